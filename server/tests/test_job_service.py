import asyncio
from unittest import IsolatedAsyncioTestCase, skipIf

try:
    import provisioner.services.job_service as job_service_module
    from provisioner.core.config import IPMI_OBM_SERVICE, Settings
    from provisioner.core.install_options import OptionsValidationError
    from provisioner.core.models import (
        HttpResponseEvent,
        InstallOsJobRequest,
        IpmiCatalogJobRequest,
        IpmiCommand,
        IpmiCommandJobRequest,
        JobStatus,
        JobType,
        Node,
        ObmConfig,
        ObmSetting,
    )
    from provisioner.services.inventory_service import InventoryService
    from provisioner.services.job_service import JobService, _redact_sensitive_parameters
    from provisioner.services.lookup_service import LookupService
    from provisioner.services.task_bus import TaskBus

    from ipmi_fakes import FakeIpmitool
    IMPORT_ERROR = None
except ModuleNotFoundError as exc:  # pragma: no cover - environment guard
    job_service_module = None
    IMPORT_ERROR = exc


NODE_ID = "node-js-1"


class StubFetcher:
    def __init__(self):
        self.closed = False

    async def fetch_options(self, repo):
        return {"mbootFile": f"{repo}/mboot.c32"}

    async def aclose(self):
        self.closed = True


def _install_request(node_id=NODE_ID, **options):
    return InstallOsJobRequest(
        node_id=node_id,
        options={
            "completionUri": "kickstart",
            "profile": "install-centos.ipxe",
            "rootPassword": "toor",
            "users": [{"name": "ops", "password": "opspass", "uid": 1000}],
            **options,
        },
    )


@skipIf(job_service_module is None, "Server dependencies not installed")
class JobServiceTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.bus = TaskBus()
        self.inventory = InventoryService()
        self.ipmitool = FakeIpmitool()
        self.fetcher = StubFetcher()
        await self.inventory.upsert_node(Node(
            id=NODE_ID,
            obm_settings=[ObmSetting(
                service=IPMI_OBM_SERVICE,
                config=ObmConfig(host="10.1.0.30", user="admin", password="bmcpass"),
            )],
        ))
        self.job_service = self._service()
        await self.job_service.start()

    async def asyncTearDown(self):
        await self.job_service.stop()

    def _service(self, **settings):
        return JobService(
            bus=self.bus,
            inventory=self.inventory,
            lookup=LookupService(),
            ipmitool=self.ipmitool,
            boot_config_fetcher=self.fetcher,
            settings=Settings(job_worker_concurrency=2, **settings),
        )

    async def _wait_for_status(self, job_id, *statuses, service=None):
        service = service or self.job_service
        for _ in range(200):
            job = await service.get_job(job_id)
            if job.status in statuses:
                return job
            await asyncio.sleep(0.01)
        self.fail(f"job {job_id} never reached {statuses}")

    async def _wait_for_active(self, node_id):
        for _ in range(200):
            if self.bus.has_active_job(node_id):
                return
            await asyncio.sleep(0.01)
        self.fail(f"no active job for {node_id}")

    def test_redaction_is_recursive_and_copies(self):
        parameters = {
            "options": {
                "rootPassword": "toor",
                "users": [{"name": "ops", "password": "pw", "sshKey": "k"}],
            },
            "nodeId": "n1",
        }

        redacted = _redact_sensitive_parameters(parameters)

        self.assertEqual(redacted["options"]["rootPassword"], "••••••")
        self.assertEqual(redacted["options"]["users"][0]["password"], "••••••")
        self.assertEqual(redacted["options"]["users"][0]["sshKey"], "k")
        self.assertEqual(parameters["options"]["rootPassword"], "toor")
        self.assertEqual(_redact_sensitive_parameters(None), {})

    async def test_invalid_install_options_are_rejected_at_submission(self):
        request = InstallOsJobRequest(node_id=NODE_ID, options={"profile": "p"})

        with self.assertRaises(OptionsValidationError):
            await self.job_service.submit_install_os_job(request)

        self.assertEqual(await self.job_service.get_all_jobs(), [])

    async def test_submission_requires_running_service(self):
        service = self._service()

        with self.assertRaises(RuntimeError):
            await service.submit_install_os_job(_install_request())

    async def test_install_job_completes_on_notification(self):
        job = await self.job_service.submit_install_os_job(_install_request())

        self.assertEqual(job.job_type, JobType.INSTALL_OS)
        self.assertEqual(job.status, JobStatus.PENDING)
        self.assertEqual(job.parameters["options"]["rootPassword"], "••••••")
        self.assertEqual(job.parameters["profile"], "install-centos.ipxe")

        await self._wait_for_active(NODE_ID)
        running = await self.job_service.get_job(job.job_id)
        self.assertEqual(running.status, JobStatus.RUNNING)
        self.assertEqual(
            self.bus.request_properties(NODE_ID)["rootPlainPassword"], "toor"
        )

        await self.bus.publish_http_response(HttpResponseEvent(
            status_code=200, url="/api/v1/templates/kickstart?nodeId=" + NODE_ID, node_id=NODE_ID,
        ))

        done = await self._wait_for_status(job.job_id, JobStatus.COMPLETED)
        self.assertIsNotNone(done.completed_at)
        self.assertIsNone(done.error)
        self.assertFalse(self.bus.has_active_job(NODE_ID))

    async def test_install_job_times_out_when_configured(self):
        service = self._service(install_completion_timeout_seconds=0.05)
        await service.start()
        try:
            job = await service.submit_install_os_job(_install_request())
            failed = await self._wait_for_status(job.job_id, JobStatus.FAILED, service=service)
        finally:
            await service.stop()

        self.assertIn("No completion notification", failed.error)
        self.assertIn("ERROR: No completion notification", failed.output[0])
        self.assertFalse(self.bus.has_active_job(NODE_ID))

    async def test_ipmi_command_job_publishes_and_completes(self):
        received = []
        self.bus.subscribe_command_result(
            "ipmi.command.chassis.result.54edcbb0-437f-44ba-a47c-29446b018052",
            lambda topic, data: received.append(data),
        )

        job = await self.job_service.submit_ipmi_command_job(
            IpmiCommandJobRequest(node_id=NODE_ID, command=IpmiCommand.CHASSIS)
        )
        done = await self._wait_for_status(job.job_id, JobStatus.COMPLETED, JobStatus.FAILED)

        self.assertEqual(done.status, JobStatus.COMPLETED)
        self.assertEqual(done.parameters, {"command": "chassis", "nodeId": NODE_ID})
        self.assertEqual(len(received), 1)
        self.assertNotIn("password", received[0])

    async def test_pending_installs_do_not_block_other_jobs(self):
        """Installs awaiting their node must leave the workers free."""
        install_nodes = [f"install-{index}" for index in range(2)]
        installs = [
            await self.job_service.submit_install_os_job(_install_request(node_id))
            for node_id in install_nodes
        ]
        for node_id in install_nodes:
            await self._wait_for_active(node_id)

        command = await self.job_service.submit_ipmi_command_job(
            IpmiCommandJobRequest(node_id=NODE_ID, command=IpmiCommand.CHASSIS)
        )
        done = await self._wait_for_status(command.job_id, JobStatus.COMPLETED, JobStatus.FAILED)

        self.assertEqual(done.status, JobStatus.COMPLETED)
        for install in installs:
            waiting = await self.job_service.get_job(install.job_id)
            self.assertEqual(waiting.status, JobStatus.RUNNING)

        await self.bus.publish_http_response(HttpResponseEvent(
            status_code=204, url="/api/v1/templates/kickstart?nodeId=install-0",
            node_id="install-0",
        ))
        finished = await self._wait_for_status(installs[0].job_id, JobStatus.COMPLETED)
        self.assertIsNotNone(finished.completed_at)

    async def test_stop_records_failure_for_every_waiting_install(self):
        installs = [
            await self.job_service.submit_install_os_job(_install_request(node_id))
            for node_id in ("install-a", "install-b", "install-c")
        ]
        for node_id in ("install-a", "install-b", "install-c"):
            await self._wait_for_active(node_id)

        await self.job_service.stop()

        for install in installs:
            stopped = await self.job_service.get_job(install.job_id)
            self.assertEqual(stopped.status, JobStatus.FAILED)
            self.assertEqual(stopped.error, "Job service stopped")

    async def test_ipmi_command_job_for_unknown_node_fails(self):
        job = await self.job_service.submit_ipmi_command_job(
            IpmiCommandJobRequest(node_id="missing", command=IpmiCommand.SEL, count=5)
        )
        failed = await self._wait_for_status(job.job_id, JobStatus.FAILED)

        self.assertEqual(failed.parameters["count"], 5)
        self.assertIn("missing", failed.error)

    async def test_ipmi_catalog_job_stores_entries(self):
        job = await self.job_service.submit_ipmi_catalog_job(
            IpmiCatalogJobRequest(node_id=NODE_ID, commands=["sdr elist", "raw 0x06 0x01"])
        )
        await self._wait_for_status(job.job_id, JobStatus.COMPLETED)

        catalogs = await self.inventory.find_catalogs_by_node(NODE_ID)
        self.assertEqual([entry.source for entry in catalogs], ["ipmi-sdr-elist"])

    async def test_stop_fails_waiting_jobs_and_closes_fetcher(self):
        job = await self.job_service.submit_install_os_job(_install_request())
        await self._wait_for_active(NODE_ID)

        await self.job_service.stop()

        stopped = await self.job_service.get_job(job.job_id)
        self.assertEqual(stopped.status, JobStatus.FAILED)
        self.assertEqual(stopped.error, "Job service stopped")
        self.assertTrue(self.fetcher.closed)

    async def test_get_job_returns_none_for_unknown_id(self):
        self.assertIsNone(await self.job_service.get_job("nope"))
