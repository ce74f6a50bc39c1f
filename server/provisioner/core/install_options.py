"""Installation option validation, normalization and credential derivation.

Install options arrive as a loosely structured dictionary assembled from a task
definition and per-vendor profile defaults. Installer templates (kickstart,
preseed, ESXi ks.cfg) consume the dictionary directly, so the processor keeps
the camelCase keys and any extra fields intact and only touches the fields it
owns:

- required fields are type-checked through the Pydantic schemas below
- optional collections become empty lists
- the repository URL loses surrounding whitespace and one trailing slash
- falsy SSH keys are removed so templates see the key as absent
- passwords gain a plaintext copy and a SHA-512 crypt digest
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional

from passlib.hash import sha512_crypt
from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError

from .config import settings


class OptionsValidationError(ValueError):
    """Raised when install options are missing required fields or mistyped."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []


# ============================================================================
# Validation Schemas
# ============================================================================


class IpConfigSchema(BaseModel):
    """Static address block for one IP family on a network device."""
    ipAddr: StrictStr
    gateway: StrictStr
    netmask: StrictStr

    model_config = ConfigDict(extra="allow")


class NetworkDeviceSchema(BaseModel):
    """Network device entry; address blocks are validated only when present."""
    device: StrictStr
    ipv4: Optional[IpConfigSchema] = None
    ipv6: Optional[IpConfigSchema] = None

    model_config = ConfigDict(extra="allow")


class UserAccountSchema(BaseModel):
    """Additional account created by the installer."""
    name: StrictStr
    password: StrictStr
    uid: StrictInt
    sshKey: Optional[Any] = None

    model_config = ConfigDict(extra="allow")


class InstallOptionsSchema(BaseModel):
    """Fields every install flavor relies on.

    Repository, version, hostname and root password are deliberately left
    optional: some installer profiles still hard-code them.
    """
    completionUri: StrictStr
    profile: StrictStr
    repo: Optional[StrictStr] = None
    rootPassword: Optional[StrictStr] = None
    networkDevices: Optional[List[NetworkDeviceSchema]] = None
    users: Optional[List[UserAccountSchema]] = None

    model_config = ConfigDict(extra="allow")


# ============================================================================
# Helpers
# ============================================================================


def normalize_repo_url(repo: str) -> str:
    """Trim whitespace and strip exactly one trailing slash.

    Both ``http://host/repo`` and ``http://host/repo/`` address the same
    repository; the slash-less form is what path joins below expect.
    """
    repo = repo.strip()
    if repo.endswith("/"):
        repo = repo[:-1]
    return repo


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Return a salted SHA-512 crypt digest (``$6$<salt>$<digest>``)."""
    if rounds is None:
        rounds = settings.password_hash_rounds
    return sha512_crypt.using(rounds=rounds).hash(password)


def verify_password(password: str, digest: str) -> bool:
    """Check a plaintext password against a SHA-512 crypt digest."""
    return sha512_crypt.verify(password, digest)


def _format_validation_error(exc: ValidationError) -> OptionsValidationError:
    fields = [
        ".".join(str(part) for part in error["loc"]) for error in exc.errors()
    ]
    message = "Invalid install options: " + "; ".join(
        f"{field} ({error['msg']})" for field, error in zip(fields, exc.errors())
    )
    return OptionsValidationError(message, fields)


class OptionsProcessor:
    """Validate, normalize and derive credentials for install options."""

    def __init__(
        self,
        hash_rounds: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._hash_rounds = hash_rounds
        self._logger = logger or logging.getLogger(__name__)

    def process(self, raw_options: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Return a processed copy of ``raw_options``.

        Raises:
            OptionsValidationError: if a required field is missing or mistyped.
        """
        options: Dict[str, Any] = copy.deepcopy(dict(raw_options or {}))
        self.validate(options)
        self.convert(options)
        self.encrypt_passwords(options)
        return options

    def validate(self, options: Mapping[str, Any]) -> None:
        try:
            InstallOptionsSchema.model_validate(options)
        except ValidationError as exc:
            error = _format_validation_error(exc)
            self._logger.warning("%s", error)
            raise error from exc

    def convert(self, options: Dict[str, Any]) -> None:
        options["users"] = options.get("users") or []
        options["networkDevices"] = options.get("networkDevices") or []
        options["dnsServers"] = options.get("dnsServers") or []

        if options.get("repo"):
            options["repo"] = normalize_repo_url(options["repo"])

        # Templates treat a missing key as "not configured"; an empty string
        # or None would be rendered literally.
        if not options.get("rootSshKey"):
            options.pop("rootSshKey", None)
        for user in options["users"]:
            if not user.get("sshKey"):
                user.pop("sshKey", None)

    def encrypt_passwords(self, options: Dict[str, Any]) -> None:
        # RHEL-family installers take the crypt digest, ESXi the plaintext.
        for user in options.get("users", []):
            if user.get("password"):
                user["plainPassword"] = user["password"]
                user["encryptedPassword"] = hash_password(
                    user["password"], self._hash_rounds
                )

        if options.get("rootPassword"):
            options["rootPlainPassword"] = options["rootPassword"]
            options["rootEncryptedPassword"] = hash_password(
                options["rootPassword"], self._hash_rounds
            )
