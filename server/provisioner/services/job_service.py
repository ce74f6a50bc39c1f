"""Provisioning job submission and execution service."""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from ..core.config import Settings, settings as default_settings
from ..core.models import (
    InstallOsJobRequest,
    IpmiCatalogJobRequest,
    IpmiCommandJobRequest,
    Job,
    JobStatus,
    JobType,
)
from .boot_config_service import BootConfigFetcher
from .install_os_job import InstallOsJob
from .inventory_service import InventoryService, inventory_service
from .ipmi_catalog_job import IpmiCatalogJob
from .ipmi_command_job import IpmiCommandJob
from .ipmitool_service import IpmitoolService, ipmitool_service
from .job_lifecycle import JobLifecycle
from .lookup_service import LookupService, lookup_service
from .task_bus import TaskBus, task_bus

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = frozenset({
    "password",
    "plainPassword",
    "encryptedPassword",
    "rootPassword",
    "rootPlainPassword",
    "rootEncryptedPassword",
})


class JobRunner(Protocol):
    async def run(self) -> None: ...


def _redact_sensitive_parameters(
    parameters: Optional[Dict[str, Any]],
    replacement: str = "••••••",
) -> Dict[str, Any]:
    """Return a copy of job parameters with credential values redacted."""
    if parameters is None:
        return {}

    sanitized = copy.deepcopy(parameters)

    def _redact(value: Any) -> None:
        if isinstance(value, dict):
            for key, item in value.items():
                if key in SENSITIVE_FIELDS and item is not None:
                    value[key] = replacement
                else:
                    _redact(item)
        elif isinstance(value, list):
            for element in value:
                _redact(element)

    _redact(sanitized)
    return sanitized


class JobService:
    """Service for tracking and executing submitted jobs."""

    def __init__(
        self,
        bus: Optional[TaskBus] = None,
        inventory: Optional[InventoryService] = None,
        lookup: Optional[LookupService] = None,
        ipmitool: Optional[IpmitoolService] = None,
        boot_config_fetcher: Optional[BootConfigFetcher] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.jobs: Dict[str, Job] = {}
        self._runners: Dict[str, Tuple[JobRunner, JobLifecycle]] = {}
        self._lock = asyncio.Lock()
        self._queue: Optional[asyncio.Queue[Optional[str]]] = None
        self._worker_tasks: List[asyncio.Task[None]] = []
        self._completion_tasks: Set[asyncio.Task[None]] = set()
        self._started = False

        self._bus = bus or task_bus
        self._inventory = inventory or inventory_service
        self._lookup = lookup or lookup_service
        self._ipmitool = ipmitool or ipmitool_service
        self._boot_config_fetcher = boot_config_fetcher or BootConfigFetcher()
        self._settings = settings or default_settings

    def _prepare_job_response(self, job: Job) -> Job:
        """Return a deep-copied job with sensitive data redacted."""

        job_copy = job.model_copy(deep=True)
        job_copy.parameters = _redact_sensitive_parameters(job_copy.parameters)
        return job_copy

    async def start(self) -> None:
        """Initialise the job queue workers."""

        if self._started:
            return

        self._queue = asyncio.Queue()
        concurrency = max(1, self._settings.job_worker_concurrency)
        self._worker_tasks = [
            asyncio.create_task(self._worker()) for _ in range(concurrency)
        ]
        self._started = True
        logger.info("Job service initialised (concurrency=%d)", concurrency)

    async def stop(self) -> None:
        """Stop the job queue workers, failing jobs that are still waiting."""

        if not self._started:
            return

        async with self._lock:
            active = [lifecycle for _, lifecycle in self._runners.values()]
        for lifecycle in active:
            lifecycle.fail(RuntimeError("Job service stopped"))

        assert self._queue is not None
        for _ in range(len(self._worker_tasks) or 1):
            await self._queue.put(None)

        # Wait for workers with timeout to prevent infinite hangs
        for task in self._worker_tasks:
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:  # pragma: no cover - defensive handling
                logger.warning(
                    "Job worker task did not complete within timeout, cancelling")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._worker_tasks = []

        # Completion watchers observe the failures above and record them
        watchers = list(self._completion_tasks)
        if watchers:
            _, pending = await asyncio.wait(watchers, timeout=5.0)
            for task in pending:  # pragma: no cover - defensive handling
                logger.warning("Job completion watcher did not finish, cancelling")
                task.cancel()
            if pending:  # pragma: no cover - defensive handling
                await asyncio.gather(*pending, return_exceptions=True)
        self._completion_tasks.clear()

        await self._boot_config_fetcher.aclose()
        self._queue = None
        self._started = False
        logger.info("Job service stopped")

    def _ensure_running(self) -> asyncio.Queue:
        if not self._started or self._queue is None:
            raise RuntimeError("Job service is not running")
        return self._queue

    def _new_lifecycle(self, job_id: str, node_id: str) -> JobLifecycle:
        return JobLifecycle(job_id, node_id, self._bus)

    async def submit_install_os_job(self, request: InstallOsJobRequest) -> Job:
        """Validate install options and queue an OS install for a node.

        Raises:
            OptionsValidationError: if the options are invalid; nothing is queued.
        """
        queue = self._ensure_running()
        job_id = str(uuid.uuid4())
        lifecycle = self._new_lifecycle(job_id, request.node_id)
        runner = InstallOsJob(
            request.options,
            {"target": request.node_id},
            job_id,
            lifecycle=lifecycle,
            boot_config_fetcher=self._boot_config_fetcher,
            settings=self._settings,
        )
        job = await self._register(
            job_id, JobType.INSTALL_OS, request.node_id,
            {"profile": runner.profile, "options": request.options},
            runner, lifecycle,
        )
        await queue.put(job_id)
        logger.info("Queued install job %s for node %s (profile %s)",
                    job_id, request.node_id, runner.profile)
        return job

    async def submit_ipmi_command_job(self, request: IpmiCommandJobRequest) -> Job:
        """Queue a single IPMI telemetry command for a node."""
        queue = self._ensure_running()
        job_id = str(uuid.uuid4())
        lifecycle = self._new_lifecycle(job_id, request.node_id)
        options: Dict[str, Any] = {
            "command": request.command.value,
            "nodeId": request.node_id,
        }
        if request.count is not None:
            options["count"] = request.count
        runner = IpmiCommandJob(
            options,
            {},
            job_id,
            lifecycle=lifecycle,
            inventory=self._inventory,
            lookup=self._lookup,
            ipmitool=self._ipmitool,
            bus=self._bus,
            settings=self._settings,
        )
        job = await self._register(
            job_id, JobType.IPMI_COMMAND, request.node_id, options, runner, lifecycle
        )
        await queue.put(job_id)
        logger.info("Queued IPMI %s job %s for node %s",
                    request.command.value, job_id, request.node_id)
        return job

    async def submit_ipmi_catalog_job(self, request: IpmiCatalogJobRequest) -> Job:
        """Queue an IPMI catalog run for a node."""
        queue = self._ensure_running()
        job_id = str(uuid.uuid4())
        lifecycle = self._new_lifecycle(job_id, request.node_id)
        options = {
            "commands": list(request.commands),
            "acceptedResponseCodes": list(request.accepted_response_codes),
        }
        runner = IpmiCatalogJob(
            options,
            {"target": request.node_id},
            job_id,
            lifecycle=lifecycle,
            inventory=self._inventory,
            lookup=self._lookup,
            ipmitool=self._ipmitool,
        )
        job = await self._register(
            job_id, JobType.IPMI_CATALOG, request.node_id, options, runner, lifecycle
        )
        await queue.put(job_id)
        logger.info("Queued IPMI catalog job %s for node %s", job_id, request.node_id)
        return job

    async def _register(
        self,
        job_id: str,
        job_type: JobType,
        node_id: str,
        parameters: Dict[str, Any],
        runner: JobRunner,
        lifecycle: JobLifecycle,
    ) -> Job:
        job = Job(
            job_id=job_id,
            job_type=job_type,
            status=JobStatus.PENDING,
            created_at=datetime.now(timezone.utc),
            target_node=node_id,
            parameters=copy.deepcopy(parameters),
        )
        async with self._lock:
            self.jobs[job_id] = job
            self._runners[job_id] = (runner, lifecycle)
        return self._prepare_job_response(job)

    async def get_job(self, job_id: str) -> Optional[Job]:
        """Return a previously submitted job."""

        async with self._lock:
            job = self.jobs.get(job_id)
            return self._prepare_job_response(job) if job else None

    async def get_all_jobs(self) -> List[Job]:
        """Return all tracked jobs."""

        async with self._lock:
            return [self._prepare_job_response(job) for job in self.jobs.values()]

    async def _worker(self) -> None:
        assert self._queue is not None
        while True:
            job_id = await self._queue.get()
            if job_id is None:
                self._queue.task_done()
                break

            try:
                await self._process_job(job_id)
            except Exception:  # pragma: no cover - defensive logging
                logger.exception(
                    "Unhandled exception while processing job %s", job_id)
            finally:
                self._queue.task_done()

    def _completion_timeout(self, job: Job) -> Optional[float]:
        if job.job_type == JobType.INSTALL_OS:
            return self._settings.install_completion_timeout_seconds
        return None

    async def _process_job(self, job_id: str) -> None:
        async with self._lock:
            job = self.jobs.get(job_id)
            entry = self._runners.get(job_id)
        if not job or not entry:
            logger.warning("Received unknown job id %s", job_id)
            return

        runner, lifecycle = entry
        await self._update_job(
            job_id, status=JobStatus.RUNNING, started_at=datetime.now(timezone.utc)
        )

        try:
            if not lifecycle.finished:
                await runner.run()
        except Exception as exc:
            lifecycle.fail(exc)

        if lifecycle.finished:
            await self._record_outcome(job_id, lifecycle)
            return

        # Jobs awaiting a node notification release the worker slot
        watcher = asyncio.create_task(self._watch_completion(job, lifecycle))
        self._completion_tasks.add(watcher)
        watcher.add_done_callback(self._completion_tasks.discard)

    async def _watch_completion(self, job: Job, lifecycle: JobLifecycle) -> None:
        timeout = self._completion_timeout(job)
        try:
            await lifecycle.wait(timeout)
        except asyncio.TimeoutError:
            lifecycle.fail(TimeoutError(
                f"No completion notification from node {job.target_node} "
                f"within {timeout:.0f}s"
            ))
        except Exception as exc:  # pragma: no cover - defensive handling
            lifecycle.fail(exc)

        try:
            await self._record_outcome(job.job_id, lifecycle)
        except Exception:  # pragma: no cover - defensive logging
            logger.exception("Unhandled exception while finishing job %s", job.job_id)

    async def _record_outcome(self, job_id: str, lifecycle: JobLifecycle) -> None:
        async with self._lock:
            self._runners.pop(job_id, None)

        if lifecycle.status == JobStatus.FAILED:
            logger.error("Job %s failed: %s", job_id, lifecycle.error)
            await self._append_job_output(job_id, f"ERROR: {lifecycle.error}")
            await self._update_job(
                job_id,
                status=JobStatus.FAILED,
                completed_at=datetime.now(timezone.utc),
                error=str(lifecycle.error),
            )
            return

        await self._update_job(
            job_id,
            status=JobStatus.COMPLETED,
            completed_at=datetime.now(timezone.utc),
        )
        logger.info("Job %s completed", job_id)

    async def _update_job(self, job_id: str, **changes: Any) -> Optional[Job]:
        async with self._lock:
            job = self.jobs.get(job_id)
            if not job:
                return None
            for field, value in changes.items():
                setattr(job, field, value)
            job_copy = job.model_copy(deep=True)

        return self._prepare_job_response(job_copy)

    async def _append_job_output(
        self, job_id: str, *messages: Optional[str]
    ) -> None:
        lines: List[str] = []
        for message in messages:
            if not message:
                continue
            normalized = message.replace("\r\n", "\n").replace("\r", "\n")
            for line in normalized.split("\n"):
                if line:
                    lines.append(line)

        if not lines:
            return

        async with self._lock:
            job = self.jobs.get(job_id)
            if job:
                job.output.extend(lines)


job_service = JobService()
