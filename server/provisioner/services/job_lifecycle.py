"""Lifecycle handle handed to each running job."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ..core.models import HttpResponseEvent, JobStatus
from .task_bus import Subscription, TaskBus

logger = logging.getLogger(__name__)


class JobLifecycle:
    """Tracks the terminal state of one job and owns its bus subscriptions.

    The first call to :meth:`complete` or :meth:`fail` decides the outcome;
    later calls are ignored. Reaching a terminal state disposes every
    subscription the job registered through this handle.
    """

    def __init__(self, job_id: str, node_id: Optional[str], bus: TaskBus):
        self.job_id = job_id
        self.node_id = node_id
        self._bus = bus
        self._subscriptions: List[Subscription] = []
        self._done: Optional[asyncio.Future] = None
        self.status = JobStatus.PENDING
        self.error: Optional[BaseException] = None

    def _future(self) -> asyncio.Future:
        if self._done is None:
            self._done = asyncio.get_running_loop().create_future()
        return self._done

    @property
    def finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def start(self) -> None:
        if self.status == JobStatus.PENDING:
            self.status = JobStatus.RUNNING

    def complete(self) -> None:
        self._finish(JobStatus.COMPLETED, None)

    def fail(self, error: BaseException) -> None:
        self._finish(JobStatus.FAILED, error)

    def _finish(self, status: JobStatus, error: Optional[BaseException]) -> None:
        if self.finished:
            logger.debug(
                "Ignoring %s for job %s already %s", status.value, self.job_id, self.status.value
            )
            return

        self.status = status
        self.error = error
        self._dispose_subscriptions()

        if self._done is not None and not self._done.done():
            self._done.set_result(status)

    async def wait(self, timeout: Optional[float] = None) -> JobStatus:
        """Wait for a terminal state; raises ``asyncio.TimeoutError`` on timeout."""
        if self.finished:
            return self.status
        return await asyncio.wait_for(asyncio.shield(self._future()), timeout)

    def _dispose_subscriptions(self) -> None:
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []

    def _track(self, subscription: Subscription) -> Subscription:
        if self.finished:
            subscription.dispose()
        else:
            self._subscriptions.append(subscription)
        return subscription

    def _require_node(self) -> str:
        if not self.node_id:
            raise RuntimeError(f"Job {self.job_id} has no target node to subscribe for")
        return self.node_id

    def subscribe_request_profile(self, handler: Callable[[], str]) -> Subscription:
        return self._track(
            self._bus.subscribe_request_profile(self._require_node(), handler)
        )

    def subscribe_request_properties(
        self, handler: Callable[[], Dict[str, Any]]
    ) -> Subscription:
        return self._track(
            self._bus.subscribe_request_properties(self._require_node(), handler)
        )

    def subscribe_http_response(
        self, callback: Callable[[HttpResponseEvent], None]
    ) -> Subscription:
        return self._track(
            self._bus.subscribe_http_response(self._require_node(), callback)
        )
