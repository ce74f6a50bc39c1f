"""Asynchronous wrapper around the ipmitool command line client."""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.config import settings

logger = logging.getLogger(__name__)

DRIVE_SLOT_SENSOR_TYPE = "Drive Slot / Bay"
PASSWORD_ENV_VAR = "IPMI_PASSWORD"


class IpmitoolError(RuntimeError):
    """Raised when ipmitool cannot be executed or exits unsuccessfully."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class IpmitoolTimeoutError(IpmitoolError):
    """Raised when an ipmitool invocation exceeds its timeout."""


@dataclass
class IpmitoolResult:
    """Captured output of a single ipmitool invocation."""

    exit_code: int
    stdout: str
    stderr: str


def build_credential_args(host: str, user: str, password: str) -> List[str]:
    return ["-U", user, "-P", password, "-H", host]


def move_password_to_env(args: Sequence[str]) -> Tuple[List[str], Optional[Dict[str, str]]]:
    """Swap ``-P <password>`` for ``-E`` and a child environment holding it.

    ipmitool reads ``IPMI_PASSWORD`` when given ``-E``, which keeps the
    password out of the process table. Arguments without ``-P`` are returned
    unchanged with no environment override.
    """
    args = list(args)
    if "-P" not in args:
        return args, None
    index = args.index("-P")
    if index + 1 >= len(args):
        raise IpmitoolError("ipmitool -P given without a password")
    password = args[index + 1]
    env = dict(os.environ)
    env[PASSWORD_ENV_VAR] = password
    return args[:index] + ["-E"] + args[index + 2:], env


class IpmitoolService:
    """Run ipmitool against a BMC over the network."""

    def __init__(
        self,
        executable: Optional[str] = None,
        interface: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._executable = executable or settings.ipmitool_path
        self._interface = interface or settings.ipmitool_interface
        self._timeout = timeout if timeout is not None else settings.ipmitool_timeout_seconds

    async def run(
        self, args: Sequence[str], accepted_codes: Iterable[int] = ()
    ) -> IpmitoolResult:
        """Execute ipmitool with pre-built ``args`` (credentials included).

        Exit code 0 and any code in ``accepted_codes`` count as success.
        """
        args, env = move_password_to_env(args)
        argv = [self._executable, "-I", self._interface, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise IpmitoolError(f"Unable to execute {self._executable}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise IpmitoolTimeoutError(
                f"ipmitool timed out after {self._timeout:.0f}s"
            ) from exc

        result = IpmitoolResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if result.exit_code != 0 and result.exit_code not in set(accepted_codes):
            raise IpmitoolError(
                f"ipmitool exited with code {result.exit_code}: {result.stderr.strip()}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result

    async def run_command(
        self,
        host: str,
        user: str,
        password: str,
        command: Sequence[str],
        accepted_codes: Iterable[int] = (),
    ) -> str:
        """Run ``command`` against ``host`` and return its standard output."""
        logger.debug("Running ipmitool %s against %s", " ".join(command), host)
        result = await self.run(
            [*build_credential_args(host, user, password), *command], accepted_codes
        )
        return result.stdout

    async def sel_information(self, host: str, user: str, password: str) -> str:
        return await self.run_command(host, user, password, ["sel", "info"])

    async def sel(self, host: str, user: str, password: str, count: int) -> str:
        return await self.run_command(
            host, user, password, ["sel", "list", "last", str(count)]
        )

    async def sensor_data_repository(self, host: str, user: str, password: str) -> str:
        return await self.run_command(host, user, password, ["sdr", "elist"])

    async def chassis_status(self, host: str, user: str, password: str) -> str:
        return await self.run_command(host, user, password, ["chassis", "status"])

    async def drive_health_status(self, host: str, user: str, password: str) -> str:
        return await self.run_command(
            host, user, password, ["sdr", "type", DRIVE_SLOT_SENSOR_TYPE]
        )


ipmitool_service = IpmitoolService()
