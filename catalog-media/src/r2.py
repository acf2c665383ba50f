"""Cloudflare R2 (S3-compatible) upload backend.

Credentials come from ObjectStorageConfig (R2_ACCOUNT_ID / R2_ENDPOINT,
R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY, R2_BUCKET). boto3 is blocking, so
uploads run in a worker thread.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import boto3

from catalog_media.backends import UploadBackend
from catalog_media.config import ObjectStorageConfig
from catalog_media.models import OBJECT_STORAGE_SERVICE, BackendUploadResult, DownloadedAsset

logger = logging.getLogger(__name__)


def create_s3_client(config: ObjectStorageConfig):
    return boto3.client(
        "s3",
        endpoint_url=config.endpoint_url,
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        region_name=config.region,
    )


def build_storage_key(filename: str, sku: Optional[str] = None, prefix: str = "products",
                      now: Optional[datetime] = None) -> str:
    """products/{sku}/{filename}, or products/{year}/{month}/{filename} without a SKU."""
    sku_path = sku.strip().strip("/") if sku else ""
    if sku_path:
        base = f"{prefix}/{sku_path}"
    else:
        now = now or datetime.now(timezone.utc)
        base = f"{prefix}/{now:%Y}/{now:%m}"
    return f"{base}/{filename}"


class ObjectStorageBackend(UploadBackend):
    service = OBJECT_STORAGE_SERVICE

    def __init__(self, config: ObjectStorageConfig, client=None, log: Optional[logging.Logger] = None):
        self.config = config
        self._client = client
        self.log = log or logger

    @property
    def client(self):
        """Create the S3 client on first use and keep it for this backend."""
        if self._client is None:
            self._client = create_s3_client(self.config)
        return self._client

    def public_url(self, key: str) -> str:
        if self.config.public_url:
            return f"{self.config.public_url.rstrip('/')}/{key}"
        return f"{self.config.endpoint_url}/{self.config.bucket}/{key}"

    def _put_object(self, asset: DownloadedAsset, key: str, metadata: dict) -> dict:
        with open(asset.temp_path, "rb") as body:
            return self.client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=body,
                ContentType=asset.content_type,
                ContentLength=asset.size,
                Metadata={
                    "original-url": quote(asset.original_url, safe=":/?&=%"),
                    "sku": quote(metadata.get("sku") or ""),
                    "alt": quote(metadata.get("alt") or ""),
                    "uploaded-at": datetime.now(timezone.utc).isoformat(),
                },
            )

    async def upload(self, asset: DownloadedAsset, metadata: dict) -> BackendUploadResult:
        key = build_storage_key(asset.filename, metadata.get("sku"), self.config.key_prefix)
        self.log.info(f"Uploading to R2: {key}")
        response = await asyncio.to_thread(self._put_object, asset, key, metadata)
        return BackendUploadResult(
            service=self.service,
            key=key,
            url=self.public_url(key),
            etag=(response.get("ETag") or "").strip('"') or None,
        )

    def check_connection(self) -> dict:
        """Bucket-existence check."""
        try:
            self.client.head_bucket(Bucket=self.config.bucket)
        except Exception as exc:
            return {"status": "error", "error": str(exc)}
        return {"status": "connected", "bucket": self.config.bucket}
