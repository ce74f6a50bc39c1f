import copy

import pytest

from provisioner.core.install_options import (
    OptionsProcessor,
    OptionsValidationError,
    hash_password,
    normalize_repo_url,
    verify_password,
)


def _options(**overrides):
    options = {
        "completionUri": "kickstart",
        "profile": "install-centos.ipxe",
        "repo": "http://mirror.local/centos/7/os/x86_64/",
        "rootPassword": "RackHDRocks!",
        "rootSshKey": "",
        "users": [
            {"name": "ops", "password": "opspass", "uid": 1010, "sshKey": ""},
            {"name": "audit", "password": "auditpass", "uid": 1011, "sshKey": "ssh-rsa AAAA"},
        ],
        "networkDevices": [
            {
                "device": "eth0",
                "ipv4": {"ipAddr": "10.1.1.5", "gateway": "10.1.1.1", "netmask": "255.255.255.0"},
            }
        ],
        "hostname": "node-01",
    }
    options.update(overrides)
    return options


@pytest.fixture
def processor():
    return OptionsProcessor(hash_rounds=1000)


@pytest.mark.unit
@pytest.mark.parametrize("missing", ["completionUri", "profile"])
def test_missing_required_field_is_rejected(processor, missing):
    options = _options()
    del options[missing]

    with pytest.raises(OptionsValidationError) as exc_info:
        processor.process(options)

    assert missing in exc_info.value.fields


@pytest.mark.unit
@pytest.mark.parametrize(
    "user",
    [
        {"password": "pw", "uid": 1},
        {"name": "ops", "uid": 1},
        {"name": "ops", "password": "pw"},
        {"name": "ops", "password": "pw", "uid": "1010"},
    ],
)
def test_user_requires_name_password_and_integer_uid(processor, user):
    with pytest.raises(OptionsValidationError) as exc_info:
        processor.process(_options(users=[user]))

    assert any(field.startswith("users.0") for field in exc_info.value.fields)


@pytest.mark.unit
def test_network_device_address_block_is_checked_when_present(processor):
    devices = [{"device": "eth0", "ipv6": {"ipAddr": "fe80::1", "gateway": "fe80::fe"}}]

    with pytest.raises(OptionsValidationError) as exc_info:
        processor.process(_options(networkDevices=devices))

    assert "networkDevices.0.ipv6.netmask" in exc_info.value.fields


@pytest.mark.unit
def test_network_device_without_address_blocks_is_accepted(processor):
    result = processor.process(_options(networkDevices=[{"device": "eth1"}]))

    assert result["networkDevices"] == [{"device": "eth1"}]


@pytest.mark.unit
def test_missing_collections_default_to_empty_lists(processor):
    options = _options()
    del options["users"]
    del options["networkDevices"]

    result = processor.process(options)

    assert result["users"] == []
    assert result["networkDevices"] == []
    assert result["dnsServers"] == []


@pytest.mark.unit
def test_existing_dns_servers_are_kept(processor):
    result = processor.process(_options(dnsServers=["10.1.1.2"]))

    assert result["dnsServers"] == ["10.1.1.2"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "repo, expected",
    [
        ("http://abc.xyz/repo/test/", "http://abc.xyz/repo/test"),
        ("  http://abc.xyz/repo/test  ", "http://abc.xyz/repo/test"),
        ("http://abc.xyz/repo/test", "http://abc.xyz/repo/test"),
        ("http://abc.xyz/repo/test//", "http://abc.xyz/repo/test/"),
    ],
)
def test_normalize_repo_url(repo, expected):
    assert normalize_repo_url(repo) == expected


@pytest.mark.unit
def test_normalize_repo_url_is_idempotent_for_normalized_urls():
    once = normalize_repo_url("http://abc.xyz/repo/test/")

    assert normalize_repo_url(once) == once


@pytest.mark.unit
def test_processing_normalizes_repo(processor):
    result = processor.process(_options())

    assert result["repo"] == "http://mirror.local/centos/7/os/x86_64"


@pytest.mark.unit
def test_falsy_ssh_keys_are_removed_not_nulled(processor):
    result = processor.process(_options(rootSshKey=None))

    assert "rootSshKey" not in result
    assert "sshKey" not in result["users"][0]
    assert result["users"][1]["sshKey"] == "ssh-rsa AAAA"


@pytest.mark.unit
def test_passwords_gain_plain_and_encrypted_forms(processor):
    result = processor.process(_options())

    assert result["rootPlainPassword"] == "RackHDRocks!"
    assert result["rootEncryptedPassword"].startswith("$6$")
    assert verify_password("RackHDRocks!", result["rootEncryptedPassword"])
    for user, plain in zip(result["users"], ["opspass", "auditpass"]):
        assert user["plainPassword"] == plain
        assert verify_password(plain, user["encryptedPassword"])


@pytest.mark.unit
def test_root_password_is_optional(processor):
    options = _options()
    del options["rootPassword"]

    result = processor.process(options)

    assert "rootPlainPassword" not in result
    assert "rootEncryptedPassword" not in result


@pytest.mark.unit
def test_hashing_is_salted():
    first = hash_password("secret", rounds=1000)
    second = hash_password("secret", rounds=1000)

    assert first != second
    assert verify_password("secret", first)
    assert verify_password("secret", second)
    assert not verify_password("other", first)


@pytest.mark.unit
def test_default_rounds_produce_plain_crypt_prefix():
    digest = hash_password("secret", rounds=5000)

    assert digest.startswith("$6$")
    assert "rounds=" not in digest


@pytest.mark.unit
def test_processing_does_not_mutate_caller_options(processor):
    options = _options()
    original = copy.deepcopy(options)

    processor.process(options)

    assert options == original


@pytest.mark.unit
def test_extra_fields_are_preserved(processor):
    result = processor.process(_options(version="7", kvm=True))

    assert result["version"] == "7"
    assert result["kvm"] is True
    assert result["hostname"] == "node-01"
