"""Resolution of BMC MAC addresses to IP addresses."""
import logging
import re
from typing import Dict

logger = logging.getLogger(__name__)

_MAC_PATTERN = re.compile(r"^([0-9a-f]{2}[:-]){5}[0-9a-f]{2}$", re.IGNORECASE)


def _normalise_mac(value: str) -> str:
    return value.strip().lower().replace("-", ":")


def is_mac_address(value: str) -> bool:
    return bool(_MAC_PATTERN.match(value.strip()))


class LookupService:
    """Maps MAC addresses (learned from DHCP leases) to IP addresses."""

    def __init__(self):
        self._leases: Dict[str, str] = {}

    def register_lease(self, mac_address: str, ip_address: str) -> None:
        self._leases[_normalise_mac(mac_address)] = ip_address.strip()

    async def mac_address_to_ip(self, host: str) -> str:
        """Return the IP for a MAC address; any other host value passes through.

        Raises:
            LookupError: if ``host`` is a MAC address without a known lease.
        """
        if not is_mac_address(host):
            return host
        ip_address = self._leases.get(_normalise_mac(host))
        if ip_address is None:
            raise LookupError(f"No IP address known for MAC address {host}")
        logger.debug("Resolved %s to %s", host, ip_address)
        return ip_address


lookup_service = LookupService()
