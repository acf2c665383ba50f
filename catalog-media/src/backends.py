"""Upload backend interface and the isolated multi-backend upload step."""

import abc
import asyncio
import logging
from typing import Iterable, Optional

from catalog_media.models import (
    CDN_SERVICE,
    OBJECT_STORAGE_SERVICE,
    BackendUploadResult,
    DownloadedAsset,
)

logger = logging.getLogger(__name__)

# Primary URL preference, highest first.
PRIMARY_ORDER = (CDN_SERVICE, OBJECT_STORAGE_SERVICE)


class UploadBackend(abc.ABC):
    """A storage target for downloaded images."""

    service: str

    @abc.abstractmethod
    async def upload(self, asset: DownloadedAsset, metadata: dict) -> BackendUploadResult:
        """Store the asset. Raise on failure."""

    @abc.abstractmethod
    def check_connection(self) -> dict:
        """Return {"status": "connected"} or {"status": "error", "error": ...}."""


async def _attempt(backend: UploadBackend, asset: DownloadedAsset, metadata: dict, log) -> BackendUploadResult:
    try:
        result = await backend.upload(asset, metadata)
    except Exception as exc:
        log.warning(f"{backend.service} upload failed for {asset.filename}: {exc}")
        return BackendUploadResult(service=backend.service, error=str(exc))
    log.info(f"Uploaded {asset.filename} to {backend.service}: {result.url}")
    return result


async def upload_to_backends(
    backends: Iterable[UploadBackend],
    asset: DownloadedAsset,
    metadata: dict,
    log: Optional[logging.Logger] = None,
) -> dict[str, BackendUploadResult]:
    """Upload to every backend concurrently; one failing never stops another."""
    log = log or logger
    backends = list(backends)
    results = await asyncio.gather(*(_attempt(backend, asset, metadata, log) for backend in backends))
    return {result.service: result for result in results}


def select_primary(services: dict[str, BackendUploadResult], original_url: str) -> tuple[str, bool]:
    """Return (primary_url, fallback)."""
    for service in PRIMARY_ORDER:
        result = services.get(service)
        if result is not None and result.ok:
            return result.url, False
    return original_url, True
