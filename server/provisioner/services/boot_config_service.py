"""Retrieval of vendor boot configuration from an install repository."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from ..core.boot_config import boot_cfg_url, extract_boot_cfg_data
from ..core.config import settings


class BootConfigFetchError(RuntimeError):
    """Raised when the boot configuration cannot be downloaded."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


@dataclass
class BootCfgDownload:
    """Manifest text together with the naming convention it was found under."""

    upper_case: bool
    data: str


class BootConfigFetcher:
    """Download and parse ``BOOT.CFG`` / ``boot.cfg`` from a repository."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._http_client = http_client
        self._owns_client = http_client is None
        self._logger = logger or logging.getLogger(__name__)

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.boot_cfg_fetch_timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch_options(self, repo: str) -> Dict[str, str]:
        """Return ``tbootFile``, ``moduleFiles`` and ``mbootFile`` for ``repo``.

        The upper-case manifest matches the official ISO layout and is tried
        first; the lower-case name is tried once after it fails.

        Raises:
            BootConfigFetchError: if neither manifest could be downloaded.
        """
        try:
            download = await self.download_boot_cfg(repo, upper_case=True)
        except BootConfigFetchError as exc:
            self._logger.debug("Falling back to lower-case boot.cfg: %s", exc)
            download = await self.download_boot_cfg(repo, upper_case=False)

        return extract_boot_cfg_data(download.data, download.upper_case, repo)

    async def download_boot_cfg(self, repo: str, upper_case: bool) -> BootCfgDownload:
        url = boot_cfg_url(repo, upper_case)
        try:
            response = await self._client().get(url)
        except httpx.HTTPError as exc:
            raise BootConfigFetchError(
                f"Failed to download file from url {url}: {exc}", url
            ) from exc

        if not response.is_success:
            raise BootConfigFetchError(
                f"Fail to download {url}, statusCode={response.status_code}",
                url,
                response.status_code,
            )

        return BootCfgDownload(upper_case=upper_case, data=response.text)
