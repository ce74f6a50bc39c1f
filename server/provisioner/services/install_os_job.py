"""Operating system installation job."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from ..core.config import Settings, settings as default_settings
from ..core.install_options import OptionsProcessor, OptionsValidationError
from ..core.models import HttpResponseEvent
from .boot_config_service import BootConfigFetcher
from .job_lifecycle import JobLifecycle


def _fill_missing(options: Dict[str, Any], defaults: Mapping[str, Any]) -> None:
    """Copy keys from ``defaults`` that ``options`` does not define."""
    for key, value in defaults.items():
        if key not in options:
            options[key] = value


class InstallOsJob:
    """Serve installer profile and options to a node until it reports completion.

    Construction validates and normalizes the options synchronously, so an
    invalid request never reaches the network. :meth:`run` optionally pulls
    vendor boot metadata from the repository and then exposes the profile,
    the options and the completion predicate through the lifecycle handle.
    """

    def __init__(
        self,
        options: Mapping[str, Any],
        context: Mapping[str, Any],
        task_id: str,
        *,
        lifecycle: JobLifecycle,
        boot_config_fetcher: BootConfigFetcher,
        options_processor: Optional[OptionsProcessor] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.task_id = task_id
        self.context = dict(context)
        self._lifecycle = lifecycle
        self._boot_config_fetcher = boot_config_fetcher
        self._settings = settings or default_settings
        self._logger = logger or logging.getLogger(__name__)

        node_id = self.context.get("target")
        if not isinstance(node_id, str) or not node_id:
            raise OptionsValidationError(
                "Install job requires a string target node", ["target"]
            )
        self.node_id: str = node_id

        processor = options_processor or OptionsProcessor(logger=self._logger)
        self.options: Dict[str, Any] = processor.process(options)
        self.profile: str = self.options["profile"]

    # Accessors consumed by the HTTP server through the task bus

    def get_profile(self) -> str:
        return self.profile

    def get_options(self) -> Dict[str, Any]:
        return self.options

    def is_install_complete(self, event: HttpResponseEvent) -> bool:
        """True for a 2xx response to a URL containing the completion URI."""
        return (
            200 <= event.status_code < 300
            and self.options["completionUri"] in event.url
        )

    def needs_boot_config(self) -> bool:
        completion_uri = self.options.get("completionUri")
        if not completion_uri:
            return False
        return completion_uri in self._settings.get_vendor_boot_cfg_completion_uris()

    async def run(self) -> None:
        self._lifecycle.start()
        try:
            await self._pre_handling()
        except Exception as exc:
            self._logger.error(
                "Failed to fetch boot options from repository %s for node %s: %s",
                self.options.get("repo"),
                self.node_id,
                exc,
                extra={
                    "repo": self.options.get("repo"),
                    "node_id": self.node_id,
                    "task_id": self.task_id,
                },
            )
            self._lifecycle.fail(exc)
            return

        self._lifecycle.subscribe_request_profile(self.get_profile)
        self._lifecycle.subscribe_request_properties(self.get_options)
        self._lifecycle.subscribe_http_response(self._on_http_response)
        self._logger.info(
            "Install job %s waiting for completion notification '%s' from node %s",
            self.task_id,
            self.options["completionUri"],
            self.node_id,
        )

    async def _pre_handling(self) -> None:
        if not self.needs_boot_config():
            return

        repo = self.options.get("repo")
        if not isinstance(repo, str) or not repo:
            raise OptionsValidationError(
                "Vendor boot configuration requires a repository URL", ["repo"]
            )

        boot_options = await self._boot_config_fetcher.fetch_options(repo)
        self._logger.debug("Boot options from external repo: %s", boot_options)
        _fill_missing(self.options, boot_options)

    def _on_http_response(self, event: HttpResponseEvent) -> None:
        if self.is_install_complete(event):
            self._logger.info(
                "Node %s reported install completion via %s", self.node_id, event.url
            )
            self._lifecycle.complete()
