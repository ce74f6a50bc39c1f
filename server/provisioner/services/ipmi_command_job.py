"""Job running a single IPMI command and publishing the parsed result."""
from __future__ import annotations

import logging
from types import ModuleType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ..core import ipmi_parser
from ..core.config import IPMI_OBM_SERVICE, Settings, settings as default_settings
from ..core.models import IpmiCommand
from .inventory_service import InventoryService
from .ipmitool_service import IpmitoolService
from .job_lifecycle import JobLifecycle
from .lookup_service import LookupService
from .task_bus import TaskBus

CommandCollector = Callable[[Dict[str, Any]], Awaitable[Any]]


class JobOptionsError(ValueError):
    """Raised when a job is created without its required options."""


class InvalidCommandError(ValueError):
    """Raised for a command name outside the supported set."""


def require_options(options: Mapping[str, Any], *names: str) -> None:
    missing = [name for name in names if not options.get(name)]
    if missing:
        raise JobOptionsError("Missing required job options: " + ", ".join(missing))


class IpmiCommandJob:
    """Collect one kind of IPMI telemetry from a node's BMC."""

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
        bus: TaskBus,
        parser: ModuleType = ipmi_parser,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        require_options(options, "command", "nodeId")
        self.options = dict(options)
        self.context = dict(context)
        self.task_id = task_id
        self.node_id: str = self.options["nodeId"]
        self.command: str = self.options["command"]
        self._lifecycle = lifecycle
        self._inventory = inventory
        self._lookup = lookup
        self._ipmitool = ipmitool
        self._bus = bus
        self._parser = parser
        self._settings = settings or default_settings
        self._logger = logger or logging.getLogger(__name__)
        self.routing_key = self._settings.ipmi_command_routing_key

    def command_map(self) -> Dict[str, CommandCollector]:
        return {
            IpmiCommand.SEL_INFORMATION.value: self.collect_ipmi_sel_information,
            IpmiCommand.SEL.value: self.collect_ipmi_sel,
            IpmiCommand.SDR.value: self.collect_ipmi_sdr,
            IpmiCommand.CHASSIS.value: self.collect_ipmi_chassis,
            IpmiCommand.DRIVE_HEALTH.value: self.collect_ipmi_drive_health,
        }

    async def run(self) -> None:
        self._lifecycle.start()
        try:
            data = await self.resolve_credentials()
            result = await self.dispatch(data)
            data[self.command] = result
            data.pop("password", None)
            await self._bus.publish_command_result(self.routing_key, self.command, data)
        except Exception as exc:
            self._logger.error(
                "Failed to run IPMI command %s for node %s: %s",
                self.command,
                self.node_id,
                exc,
                extra={"command": self.command, "node_id": self.node_id},
            )
            self._lifecycle.fail(exc)
            return
        self._lifecycle.complete()

    async def resolve_credentials(self) -> Dict[str, Any]:
        obm_setting = await self._inventory.find_obm_by_node(self.node_id, IPMI_OBM_SERVICE)
        if obm_setting is None:
            raise LookupError(f"No {IPMI_OBM_SERVICE} settings for node {self.node_id}")
        return {
            "password": obm_setting.config.password,
            "host": await self._lookup.mac_address_to_ip(obm_setting.config.host),
            "user": obm_setting.config.user,
            "workItemId": self.context.get("timerId"),
        }

    async def dispatch(self, data: Dict[str, Any]) -> Any:
        collector = self.command_map().get(self.command)
        if collector is None:
            raise InvalidCommandError(f"invalid command: {self.command}")
        return await collector(data)

    async def collect_ipmi_sel_information(self, data: Dict[str, Any]) -> Any:
        sel = await self._ipmitool.sel_information(data["host"], data["user"], data["password"])
        return self._parser.parse_sel_information_data(sel)

    async def collect_ipmi_sel(self, data: Dict[str, Any], count: Optional[int] = None) -> Any:
        count = count or self.options.get("count") or self._settings.sel_default_count
        sel = await self._ipmitool.sel(data["host"], data["user"], data["password"], count)
        return self._parser.parse_sel_data(sel)

    async def collect_ipmi_sdr(self, data: Dict[str, Any]) -> Any:
        sdr = await self._ipmitool.sensor_data_repository(
            data["host"], data["user"], data["password"]
        )
        return self._parser.parse_sdr_data(sdr)

    async def collect_ipmi_chassis(self, data: Dict[str, Any]) -> Any:
        status = await self._ipmitool.chassis_status(data["host"], data["user"], data["password"])
        return self._parser.parse_chassis_data(status)

    async def collect_ipmi_drive_health(self, data: Dict[str, Any]) -> Any:
        status = await self._ipmitool.drive_health_status(
            data["host"], data["user"], data["password"]
        )
        return self._parser.parse_drive_health_data(status)
