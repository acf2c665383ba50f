"""Streams a remote image into a uniquely named temp file."""

import asyncio
import logging
import re
import uuid
from pathlib import Path
from typing import Iterable, Optional

import aiohttp

from catalog_media.config import DEFAULT_ALLOWED_MIME_TYPES, DEFAULT_MAX_FILE_SIZE
from catalog_media.errors import DownloadError
from catalog_media.models import DownloadedAsset

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/svg+xml": ".svg",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def extension_for(content_type: str) -> str:
    return MIME_EXTENSIONS.get(content_type, ".jpg")


def normalize_content_type(header: Optional[str]) -> Optional[str]:
    """Strip parameters such as '; charset=binary' and lowercase."""
    if not header:
        return None
    return header.split(";")[0].strip().lower() or None


def build_temp_filename(sku: Optional[str], content_type: str) -> str:
    """{sku or 'image'}_{random id}{ext}"""
    stem = _UNSAFE_CHARS.sub("-", sku).strip("-") if sku else ""
    return f"{stem or 'image'}_{uuid.uuid4().hex}{extension_for(content_type)}"


async def download_image(
    session: aiohttp.ClientSession,
    url: str,
    temp_dir: str,
    sku: Optional[str] = None,
    timeout: float = 30.0,
    max_size: int = DEFAULT_MAX_FILE_SIZE,
    allowed_mime_types: Iterable[str] = DEFAULT_ALLOWED_MIME_TYPES,
    user_agent: str = "catalog-media-sync/1.0",
    log: Optional[logging.Logger] = None,
) -> DownloadedAsset:
    """Download `url` to temp_dir, return a DownloadedAsset.

    Raises DownloadError on network failure, timeout, a missing or disallowed
    content type, or a body larger than max_size. A partially written file is
    removed before the error propagates.
    """
    log = log or logger
    allowed = set(allowed_mime_types)
    log.info(f"Downloading image: {url}")
    try:
        async with session.get(
            url,
            headers={"User-Agent": user_agent},
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            resp.raise_for_status()

            content_type = normalize_content_type(resp.headers.get("Content-Type"))
            if content_type is None or content_type not in allowed:
                raise DownloadError(f"Unsupported image type: {content_type}")
            if resp.content_length is not None and resp.content_length > max_size:
                raise DownloadError(f"Image larger than {max_size} bytes: {resp.content_length}")

            filename = build_temp_filename(sku, content_type)
            temp_path = Path(temp_dir) / filename
            size = 0
            try:
                with open(temp_path, "wb") as fh:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        size += len(chunk)
                        if size > max_size:
                            raise DownloadError(f"Image larger than {max_size} bytes")
                        fh.write(chunk)
            except BaseException:
                temp_path.unlink(missing_ok=True)
                raise
    except DownloadError:
        raise
    except asyncio.TimeoutError as exc:
        raise DownloadError(f"Image download timed out after {timeout}s") from exc
    except (aiohttp.ClientError, OSError) as exc:
        raise DownloadError(f"Image download failed: {exc}") from exc

    if size == 0:
        temp_path.unlink(missing_ok=True)
        raise DownloadError("Image download returned an empty body")

    log.info(f"Downloaded {size} bytes, content-type={content_type}")
    return DownloadedAsset(
        temp_path=temp_path,
        filename=filename,
        content_type=content_type,
        size=size,
        original_url=url,
    )
