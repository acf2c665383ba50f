"""Cloudflare Images upload backend."""

import json
import logging
from typing import Optional

import aiohttp
import requests

from catalog_media.backends import UploadBackend
from catalog_media.config import CdnConfig
from catalog_media.errors import UploadError
from catalog_media.models import CDN_SERVICE, BackendUploadResult, DownloadedAsset

logger = logging.getLogger(__name__)

DEFAULT_VARIANT = "public"


def pick_delivery_url(variants: list[str]) -> str:
    """Prefer the 'public' named variant, else the first one."""
    for url in variants:
        if url.rstrip("/").endswith(f"/{DEFAULT_VARIANT}"):
            return url
    return variants[0]


class CdnImageBackend(UploadBackend):
    service = CDN_SERVICE

    def __init__(self, config: CdnConfig, session: aiohttp.ClientSession, log: Optional[logging.Logger] = None):
        self.config = config
        self.session = session
        self.log = log or logger

    @property
    def images_url(self) -> str:
        return f"{self.config.api_base.rstrip('/')}/accounts/{self.config.account_id}/images/v1"

    @property
    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def upload(self, asset: DownloadedAsset, metadata: dict) -> BackendUploadResult:
        self.log.info(f"Uploading to Cloudflare Images: {asset.filename}")
        with open(asset.temp_path, "rb") as fh:
            form = aiohttp.FormData()
            form.add_field("file", fh, filename=asset.filename, content_type=asset.content_type)
            form.add_field("id", asset.temp_path.stem)
            if metadata.get("alt"):
                form.add_field("metadata", json.dumps({"alt": metadata["alt"]}))

            async with self.session.post(
                self.images_url,
                data=form,
                headers=self.auth_headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as resp:
                payload = await resp.json(content_type=None)

        if not isinstance(payload, dict) or not payload.get("success"):
            errors = payload.get("errors") if isinstance(payload, dict) else payload
            raise UploadError(self.service, f"Cloudflare Images API error: {json.dumps(errors)}")

        result = payload.get("result") or {}
        variants = list(result.get("variants") or [])
        if not variants:
            raise UploadError(self.service, "Cloudflare Images returned no delivery URLs")

        return BackendUploadResult(
            service=self.service,
            id=result.get("id"),
            url=pick_delivery_url(variants),
            variants=variants,
        )

    def check_connection(self) -> dict:
        """Query the account's image statistics endpoint."""
        try:
            resp = requests.get(f"{self.images_url}/stats", headers=self.auth_headers, timeout=10)
            resp.raise_for_status()
            body = resp.json()
        except (requests.RequestException, ValueError) as exc:
            return {"status": "error", "error": str(exc)}
        if not body.get("success"):
            return {"status": "error", "error": json.dumps(body.get("errors"))}
        return {"status": "connected", "data": body.get("result")}
