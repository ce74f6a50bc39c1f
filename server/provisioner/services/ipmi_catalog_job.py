"""Job cataloging a node's BMC by running a list of ipmitool commands."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from ..core import ipmi_parser
from ..core.catalog import filter_catalog_entries
from ..core.config import IPMI_OBM_SERVICE
from ..core.models import CatalogEntry
from .inventory_service import InventoryService
from .ipmi_command_job import JobOptionsError
from .ipmitool_service import IpmitoolError, IpmitoolService, build_credential_args
from .job_lifecycle import JobLifecycle
from .lookup_service import LookupService


class CatalogJobError(RuntimeError):
    """Raised when the node or its IPMI settings cannot be found."""


class IpmiCatalogJob:
    """Run catalog commands against a BMC and persist the storable results."""

    def __init__(
        self,
        options: Mapping[str, Any],
        context: Mapping[str, Any],
        task_id: str,
        *,
        lifecycle: JobLifecycle,
        inventory: InventoryService,
        lookup: LookupService,
        ipmitool: IpmitoolService,
        parser: Any = ipmi_parser,
        logger: Optional[logging.Logger] = None,
    ):
        commands = options.get("commands")
        if not isinstance(commands, list) or not commands:
            raise JobOptionsError("IPMI catalog job requires a non-empty commands list")
        node_id = context.get("target")
        if not isinstance(node_id, str) or not node_id:
            raise JobOptionsError("IPMI catalog job requires a target node")

        self.commands: List[str] = [str(command) for command in commands]
        self.accepted_response_codes: List[int] = list(
            options.get("acceptedResponseCodes") or []
        )
        self.node_id = node_id
        self.task_id = task_id
        self._lifecycle = lifecycle
        self._inventory = inventory
        self._lookup = lookup
        self._ipmitool = ipmitool
        self._parser = parser
        self._logger = logger or logging.getLogger(__name__)

    @staticmethod
    def format_cmd(config: Mapping[str, str], cmd: str) -> List[str]:
        """Build ipmitool arguments for ``cmd`` with credentials prepended."""
        return [
            *build_credential_args(config["host"], config["user"], config["password"]),
            *cmd.split(" "),
        ]

    async def run(self) -> None:
        self._lifecycle.start()
        try:
            config = await self.resolve_obm_config()
            results = [await self.run_catalog_command(config, cmd) for cmd in self.commands]
            entries = await self.handle_response(results)
            self._logger.info(
                "Stored %d IPMI catalog(s) for node %s", len(entries), self.node_id
            )
        except Exception as exc:
            self._logger.error(
                "IPMI catalog failed for node %s: %s",
                self.node_id,
                exc,
                extra={"node_id": self.node_id, "task_id": self.task_id},
            )
            self._lifecycle.fail(exc)
            return
        self._lifecycle.complete()

    async def resolve_obm_config(self) -> Dict[str, str]:
        node = await self._inventory.find_node_by_identifier(self.node_id)
        if node is None:
            raise CatalogJobError("No node for ipmi catalog")

        obm_setting = next(
            (s for s in node.obm_settings if s.service == IPMI_OBM_SERVICE), None
        )
        if obm_setting is None:
            raise CatalogJobError("No ipmi obmSettings for ipmi catalog")

        return {
            "host": await self._lookup.mac_address_to_ip(obm_setting.config.host),
            "user": obm_setting.config.user,
            "password": obm_setting.config.password,
        }

    async def run_catalog_command(self, config: Mapping[str, str], cmd: str) -> Dict[str, Any]:
        try:
            result = await self._ipmitool.run(
                self.format_cmd(config, cmd), self.accepted_response_codes
            )
        except IpmitoolError as exc:
            self._logger.warning("ipmitool %s failed on node %s: %s", cmd, self.node_id, exc)
            return {"cmd": cmd, "error": str(exc)}
        return {"cmd": cmd, "stdout": result.stdout}

    async def handle_response(self, results: List[Dict[str, Any]]) -> List[CatalogEntry]:
        """Parse command results and persist the storable ones concurrently."""
        parsed = self._parser.parse_tasks(results)
        entries = filter_catalog_entries(parsed, self.node_id)
        await asyncio.gather(*(self._inventory.create_catalog(entry) for entry in entries))
        return entries
