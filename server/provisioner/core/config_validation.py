"""Configuration validation utilities."""
from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .config import (
    settings,
    set_config_validation_result,
    get_config_validation_result,
)

# Bounds accepted by SHA-512 crypt for the rounds parameter
MIN_HASH_ROUNDS = 1000
MAX_HASH_ROUNDS = 999_999_999


@dataclass
class ConfigIssue:
    """Represents a single configuration issue."""

    message: str
    hint: Optional[str] = None


@dataclass
class ConfigValidationResult:
    """Outcome of running configuration checks."""

    checked_at: datetime
    errors: List[ConfigIssue] = field(default_factory=list)
    warnings: List[ConfigIssue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


def _warn(result: ConfigValidationResult, message: str, hint: Optional[str] = None) -> None:
    result.warnings.append(ConfigIssue(message=message, hint=hint))


def _error(result: ConfigValidationResult, message: str, hint: Optional[str] = None) -> None:
    result.errors.append(ConfigIssue(message=message, hint=hint))


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except (TypeError, ValueError):
        return False
    return True


def run_config_checks(force: bool = False) -> ConfigValidationResult:
    """Validate configuration combinations and cache the result."""

    if not force:
        cached = get_config_validation_result()
        if cached is not None:
            return cached

    result = ConfigValidationResult(checked_at=datetime.utcnow())

    if not _is_uuid(settings.ipmi_command_routing_key):
        _error(
            result,
            "IPMI_COMMAND_ROUTING_KEY is not a valid UUID.",
            "Set IPMI_COMMAND_ROUTING_KEY to the UUID consumers subscribe to.",
        )

    if settings.job_worker_concurrency < 1:
        _error(
            result,
            "JOB_WORKER_CONCURRENCY must be at least 1.",
            "Set JOB_WORKER_CONCURRENCY to the number of jobs allowed to run at once.",
        )

    if not MIN_HASH_ROUNDS <= settings.password_hash_rounds <= MAX_HASH_ROUNDS:
        _error(
            result,
            "PASSWORD_HASH_ROUNDS is outside the range supported by SHA-512 crypt.",
            f"Use a value between {MIN_HASH_ROUNDS} and {MAX_HASH_ROUNDS}.",
        )

    if shutil.which(settings.ipmitool_path) is None:
        _warn(
            result,
            f"ipmitool executable '{settings.ipmitool_path}' was not found on PATH.",
            "Install ipmitool or set IPMITOOL_PATH; IPMI jobs will fail until it is available.",
        )

    if not settings.get_vendor_boot_cfg_completion_uris():
        _warn(
            result,
            "No vendor boot configuration completion URIs configured.",
            "Set VENDOR_BOOT_CFG_COMPLETION_URIS (e.g. esx-ks) so ESXi installs receive boot metadata.",
        )

    if settings.install_completion_timeout_seconds is None:
        _warn(
            result,
            "INSTALL_COMPLETION_TIMEOUT_SECONDS is not set; OS installs wait indefinitely.",
            "Set INSTALL_COMPLETION_TIMEOUT_SECONDS to fail installs that never report completion.",
        )

    set_config_validation_result(result)
    return result
