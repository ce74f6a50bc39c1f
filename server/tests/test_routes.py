import asyncio
from datetime import datetime, timezone
from unittest import IsolatedAsyncioTestCase, skipIf

import pytest

try:
    import httpx
    from fastapi.testclient import TestClient

    from provisioner import main
    from provisioner.api import routes
    from provisioner.core.config import Settings
    from provisioner.core.config_validation import ConfigIssue, ConfigValidationResult
    from provisioner.core.models import JobStatus
    from provisioner.services.inventory_service import InventoryService
    from provisioner.services.job_service import JobService
    from provisioner.services.lookup_service import LookupService
    from provisioner.services.task_bus import TaskBus

    from ipmi_fakes import FakeIpmitool
    IMPORT_ERROR = None
except ModuleNotFoundError as exc:  # pragma: no cover - environment guard
    main = None
    IMPORT_ERROR = exc


pytestmark = pytest.mark.skipif(main is None, reason="Server dependencies not installed")

NODE_ID = "node-http-1"
INSTALL_OPTIONS = {
    "completionUri": "kickstart",
    "profile": "install-centos.ipxe",
    "rootPassword": "toor",
}


def _clean_result():
    return ConfigValidationResult(checked_at=datetime.now(timezone.utc))


def _wire(monkeypatch, config_result=None):
    bus = TaskBus()
    inventory = InventoryService()
    lookup = LookupService()
    service = JobService(
        bus=bus,
        inventory=inventory,
        lookup=lookup,
        ipmitool=FakeIpmitool(),
        settings=Settings(job_worker_concurrency=1),
    )
    result = config_result or _clean_result()
    for module in (main, routes):
        monkeypatch.setattr(module, "task_bus", bus, raising=False)
        monkeypatch.setattr(module, "job_service", service, raising=False)
    monkeypatch.setattr(routes, "inventory_service", inventory)
    monkeypatch.setattr(routes, "lookup_service", lookup)
    monkeypatch.setattr(routes, "get_config_validation_result", lambda: result)
    monkeypatch.setattr(main, "run_config_checks", lambda: result)
    return bus, inventory, lookup, service


@pytest.fixture
def client(monkeypatch):
    wired = _wire(monkeypatch)
    with TestClient(main.app) as test_client:
        test_client.wired = wired
        yield test_client


def test_health_check(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness_reports_configuration_errors(monkeypatch):
    result = _clean_result()
    result.errors.append(ConfigIssue(message="IPMI_COMMAND_ROUTING_KEY is not a valid UUID."))
    _wire(monkeypatch, config_result=result)

    with TestClient(main.app) as test_client:
        response = test_client.get("/readyz")

    assert response.status_code == 503
    assert response.json()["status"] == "config_error"


def test_invalid_install_options_return_400(client):
    response = client.post(
        "/api/v1/jobs/install-os",
        json={"node_id": NODE_ID, "options": {"profile": "p"}},
    )

    assert response.status_code == 400
    assert "completionUri" in response.json()["detail"]["fields"]


def test_unsupported_ipmi_command_is_rejected_by_schema(client):
    response = client.post(
        "/api/v1/jobs/ipmi-command",
        json={"node_id": NODE_ID, "command": "powerCycle"},
    )

    assert response.status_code == 422


def test_install_submission_redacts_passwords(client):
    response = client.post(
        "/api/v1/jobs/install-os",
        json={"node_id": NODE_ID, "options": INSTALL_OPTIONS},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["parameters"]["options"]["rootPassword"] == "••••••"

    listed = client.get("/api/v1/jobs").json()
    assert [job["job_id"] for job in listed] == [body["job_id"]]


def test_unknown_job_returns_404(client):
    assert client.get("/api/v1/jobs/does-not-exist").status_code == 404


def test_profile_without_active_install_returns_404(client):
    response = client.get("/api/v1/profiles", params={"nodeId": NODE_ID})

    assert response.status_code == 404


def test_node_and_lease_registration(client):
    _, inventory, lookup, _ = client.wired

    node = client.post("/api/v1/nodes", json={
        "id": NODE_ID,
        "obm_settings": [{
            "service": "ipmi-obm-service",
            "config": {"host": "00:1e:67:aa:bb:cc", "user": "admin", "password": "pw"},
        }],
    })
    lease = client.post(
        "/api/v1/leases",
        json={"mac_address": "00:1e:67:aa:bb:cc", "ip_address": "10.1.0.40"},
    )

    assert node.status_code == 201
    assert node.json() == {"id": NODE_ID, "obm_services": ["ipmi-obm-service"]}
    assert "pw" not in node.text
    assert lease.status_code == 204
    assert NODE_ID in inventory.nodes
    assert lookup._leases["00:1e:67:aa:bb:cc"] == "10.1.0.40"
    assert client.get(f"/api/v1/nodes/{NODE_ID}/catalogs").json() == []


@skipIf(main is None, "Server dependencies not installed")
class InstallFlowTests(IsolatedAsyncioTestCase):
    """Drive an install through the HTTP surface the node talks to."""

    async def asyncSetUp(self):
        self.monkeypatch = pytest.MonkeyPatch()
        self.bus, _, _, self.service = _wire(self.monkeypatch)
        await self.service.start()
        self.client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=main.app), base_url="http://provisioner"
        )

    async def asyncTearDown(self):
        await self.client.aclose()
        await self.service.stop()
        self.monkeypatch.undo()

    async def _job_status(self, job_id, status):
        for _ in range(200):
            job = (await self.client.get(f"/api/v1/jobs/{job_id}")).json()
            if job["status"] == status:
                return job
            await asyncio.sleep(0.01)
        self.fail(f"job {job_id} never reached {status}")

    async def test_template_fetch_completes_install(self):
        submitted = await self.client.post(
            "/api/v1/jobs/install-os",
            json={"node_id": NODE_ID, "options": INSTALL_OPTIONS},
        )
        job_id = submitted.json()["job_id"]
        await self._job_status(job_id, JobStatus.RUNNING.value)
        for _ in range(200):
            if self.bus.has_active_job(NODE_ID):
                break
            await asyncio.sleep(0.01)

        profile = await self.client.get("/api/v1/profiles", params={"nodeId": NODE_ID})
        self.assertEqual(profile.status_code, 200)
        self.assertEqual(profile.json()["profile"], "install-centos.ipxe")
        self.assertTrue(profile.json()["options"]["rootEncryptedPassword"].startswith("$6$"))

        template = await self.client.get("/api/v1/templates/kickstart", params={"nodeId": NODE_ID})
        self.assertEqual(template.status_code, 200)

        done = await self._job_status(job_id, JobStatus.COMPLETED.value)
        self.assertIsNone(done["error"])
        gone = await self.client.get("/api/v1/profiles", params={"nodeId": NODE_ID})
        self.assertEqual(gone.status_code, 404)
