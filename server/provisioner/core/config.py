"""Configuration management using Pydantic settings."""

from typing import List, Optional, TYPE_CHECKING

from pydantic_settings import BaseSettings


# Well-known OBM service name for IPMI credentials attached to a node.
IPMI_OBM_SERVICE = "ipmi-obm-service"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application settings
    app_name: str = "Metal Provisioner"
    debug: bool = False
    environment_name: str = "Production Environment"

    # Job execution settings
    job_worker_concurrency: int = 6  # Maximum concurrently running jobs
    # Externally enforced deadline for OS installs; None waits for the
    # completion notification indefinitely.
    install_completion_timeout_seconds: Optional[float] = None

    # OS install settings
    # Comma-separated completion URIs whose installers need vendor boot metadata
    vendor_boot_cfg_completion_uris: str = "esx-ks"
    boot_cfg_fetch_timeout: float = 30.0  # seconds for each boot.cfg download
    password_hash_rounds: int = 5000  # SHA-512 crypt rounds (glibc default)

    # Out-of-band management settings
    ipmitool_path: str = "ipmitool"
    ipmitool_interface: str = "lanplus"
    ipmitool_timeout_seconds: float = 60.0
    sel_default_count: int = 25
    ipmi_command_routing_key: str = "54edcbb0-437f-44ba-a47c-29446b018052"

    class Config:
        env_file = ".env"
        case_sensitive = False

    def get_vendor_boot_cfg_completion_uris(self) -> List[str]:
        """Parse comma-separated completion URI list."""
        if not self.vendor_boot_cfg_completion_uris:
            return []
        return [
            uri.strip()
            for uri in self.vendor_boot_cfg_completion_uris.split(",")
            if uri.strip()
        ]


settings = Settings()


if TYPE_CHECKING:  # pragma: no cover - only for type hints
    from .config_validation import ConfigValidationResult

# Cache of the configuration validation result so it can be reused across modules
_config_validation_result: Optional["ConfigValidationResult"] = None


def set_config_validation_result(result: "ConfigValidationResult") -> None:
    """Persist the configuration validation result for reuse."""

    global _config_validation_result
    _config_validation_result = result


def get_config_validation_result() -> Optional["ConfigValidationResult"]:
    """Return the cached configuration validation result, if available."""

    return _config_validation_result
