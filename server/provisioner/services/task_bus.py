"""In-process task bus connecting running jobs to the HTTP server."""
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from ..core.models import HttpResponseEvent

logger = logging.getLogger(__name__)

HttpResponseCallback = Callable[[HttpResponseEvent], None]
CommandResultCallback = Callable[[str, Dict[str, Any]], Any]


def command_result_routing_key(command: str, routing_key: str) -> str:
    """Return the topic an IPMI command result is published on."""
    return f"ipmi.command.{command}.result.{routing_key}"


class Subscription:
    """Handle returned by subscribe calls; ``dispose`` removes the subscriber."""

    def __init__(self, topic: str, dispose: Callable[[], None]):
        self.topic = topic
        self._dispose = dispose
        self.disposed = False

    def dispose(self) -> None:
        if self.disposed:
            return
        self._dispose()
        self.disposed = True


class TaskBus:
    """Routes profile/property requests, HTTP events and command results."""

    def __init__(self):
        self._profile_handlers: Dict[str, Callable[[], str]] = {}
        self._properties_handlers: Dict[str, Callable[[], Dict[str, Any]]] = {}
        self._http_subscribers: Dict[str, List[HttpResponseCallback]] = {}
        self._result_subscribers: Dict[str, List[CommandResultCallback]] = {}

    # ------------------------------------------------------------------
    # Requests answered by the active job of a node
    # ------------------------------------------------------------------

    def subscribe_request_profile(
        self, node_id: str, handler: Callable[[], str]
    ) -> Subscription:
        """Register the handler answering profile requests for ``node_id``."""
        if node_id in self._profile_handlers:
            logger.warning("Replacing active profile handler for node %s", node_id)
        self._profile_handlers[node_id] = handler

        def _dispose() -> None:
            if self._profile_handlers.get(node_id) is handler:
                del self._profile_handlers[node_id]

        return Subscription(f"profile.{node_id}", _dispose)

    def subscribe_request_properties(
        self, node_id: str, handler: Callable[[], Dict[str, Any]]
    ) -> Subscription:
        """Register the handler answering property requests for ``node_id``."""
        if node_id in self._properties_handlers:
            logger.warning("Replacing active properties handler for node %s", node_id)
        self._properties_handlers[node_id] = handler

        def _dispose() -> None:
            if self._properties_handlers.get(node_id) is handler:
                del self._properties_handlers[node_id]

        return Subscription(f"properties.{node_id}", _dispose)

    def request_profile(self, node_id: str) -> Optional[str]:
        handler = self._profile_handlers.get(node_id)
        return handler() if handler else None

    def request_properties(self, node_id: str) -> Optional[Dict[str, Any]]:
        handler = self._properties_handlers.get(node_id)
        return handler() if handler else None

    # ------------------------------------------------------------------
    # HTTP response notifications
    # ------------------------------------------------------------------

    def subscribe_http_response(
        self, node_id: str, callback: HttpResponseCallback
    ) -> Subscription:
        """Deliver HTTP response events for ``node_id`` to ``callback``."""
        self._http_subscribers.setdefault(node_id, []).append(callback)

        def _dispose() -> None:
            subscribers = self._http_subscribers.get(node_id)
            if not subscribers:
                return
            try:
                subscribers.remove(callback)
            except ValueError:
                pass
            if not subscribers:
                self._http_subscribers.pop(node_id, None)

        return Subscription(f"http.response.{node_id}", _dispose)

    async def publish_http_response(self, event: HttpResponseEvent) -> None:
        if not event.node_id:
            return
        # Snapshot: callbacks may dispose their own subscription
        for callback in list(self._http_subscribers.get(event.node_id, [])):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "HTTP response subscriber for node %s raised", event.node_id
                )

    # ------------------------------------------------------------------
    # Command results
    # ------------------------------------------------------------------

    def subscribe_command_result(
        self, topic: str, callback: CommandResultCallback
    ) -> Subscription:
        """Receive ``(topic, payload)`` for every result published on ``topic``."""
        self._result_subscribers.setdefault(topic, []).append(callback)

        def _dispose() -> None:
            subscribers = self._result_subscribers.get(topic)
            if subscribers and callback in subscribers:
                subscribers.remove(callback)
            if not subscribers:
                self._result_subscribers.pop(topic, None)

        return Subscription(topic, _dispose)

    async def publish_command_result(
        self, routing_key: str, command: str, data: Dict[str, Any]
    ) -> str:
        """Publish an IPMI command result and return the topic used."""
        topic = command_result_routing_key(command, routing_key)
        subscribers = list(self._result_subscribers.get(topic, []))
        logger.debug("Publishing %s to %d subscriber(s)", topic, len(subscribers))
        for callback in subscribers:
            outcome = callback(topic, data)
            if inspect.isawaitable(outcome):
                await outcome
        return topic

    def has_active_job(self, node_id: str) -> bool:
        return node_id in self._profile_handlers or node_id in self._properties_handlers


task_bus = TaskBus()
