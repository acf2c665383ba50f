"""Pipeline settings.

All values can be read from env vars via load_config():
- CLOUDFLARE_IMAGES_ENABLED, CLOUDFLARE_ACCOUNT_ID, CLOUDFLARE_IMAGES_API_KEY for the CDN
- R2_ENABLED, R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY, R2_BUCKET for object storage
- IMAGE_* / PRODUCT_* for batch pacing and download limits
"""

import os
import tempfile
from dataclasses import dataclass, field
from typing import Mapping, Optional

from catalog_media.errors import ConfigurationError

DEFAULT_IMAGE_ATTRIBUTES = (
    "image", "images", "picture", "pictures", "photo", "photos",
    "main_image", "product_image", "gallery", "thumbnail",
    "media", "assets", "attachments",
)
DEFAULT_PRIMARY_ATTRIBUTES = ("image", "main_image", "product_image")
DEFAULT_NAME_ATTRIBUTES = ("name", "label", "title", "product_name")
DEFAULT_ALLOWED_MIME_TYPES = (
    "image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif", "image/svg+xml",
)
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_BUCKET = "catalog-media"
CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"


@dataclass
class CdnConfig:
    enabled: bool = True
    account_id: Optional[str] = None
    api_key: Optional[str] = None
    api_base: str = CLOUDFLARE_API_BASE
    timeout: float = 60.0

    def problems(self) -> list[str]:
        if not self.enabled:
            return []
        problems = []
        if not self.account_id:
            problems.append("CLOUDFLARE_ACCOUNT_ID is required when using Cloudflare Images")
        if not self.api_key:
            problems.append("CLOUDFLARE_IMAGES_API_KEY is required when using Cloudflare Images")
        return problems


@dataclass
class ObjectStorageConfig:
    enabled: bool = True
    account_id: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    bucket: str = DEFAULT_BUCKET
    endpoint: Optional[str] = None
    public_url: Optional[str] = None
    region: str = "auto"
    key_prefix: str = "products"

    @property
    def endpoint_url(self) -> Optional[str]:
        if self.endpoint:
            return self.endpoint.rstrip("/")
        if self.account_id:
            return f"https://{self.account_id}.r2.cloudflarestorage.com"
        return None

    def problems(self) -> list[str]:
        if not self.enabled:
            return []
        problems = []
        if not self.bucket:
            problems.append("R2_BUCKET is required when using R2")
        if not self.access_key_id:
            problems.append("R2_ACCESS_KEY_ID is required when using R2")
        if not self.secret_access_key:
            problems.append("R2_SECRET_ACCESS_KEY is required when using R2")
        if not self.endpoint_url:
            problems.append("R2_ENDPOINT or R2_ACCOUNT_ID is required when using R2")
        return problems


@dataclass
class PipelineConfig:
    """Top-level settings for extraction, downloads and batch pacing."""

    cdn: CdnConfig = field(default_factory=CdnConfig)
    object_storage: ObjectStorageConfig = field(default_factory=ObjectStorageConfig)
    processing_enabled: bool = True
    image_attributes: tuple[str, ...] = DEFAULT_IMAGE_ATTRIBUTES
    primary_attributes: tuple[str, ...] = DEFAULT_PRIMARY_ATTRIBUTES
    name_attributes: tuple[str, ...] = DEFAULT_NAME_ATTRIBUTES
    allowed_mime_types: tuple[str, ...] = DEFAULT_ALLOWED_MIME_TYPES
    base_url: Optional[str] = None
    concurrency: int = 3
    chunk_delay: float = 0.5
    product_concurrency: int = 2
    product_delay: float = 2.0
    download_timeout: float = 30.0
    image_timeout: float = 120.0
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    temp_dir: str = field(default_factory=tempfile.gettempdir)
    user_agent: str = "catalog-media-sync/1.0"

    def summary(self) -> dict:
        return {
            "processing_enabled": self.processing_enabled,
            "image_attributes": list(self.image_attributes),
            "primary_attributes": list(self.primary_attributes),
            "cdn_enabled": self.cdn.enabled,
            "object_storage_enabled": self.object_storage.enabled,
            "object_storage_bucket": self.object_storage.bucket if self.object_storage.enabled else None,
        }


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def _names(value: Optional[str], default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    return tuple(name.strip() for name in value.split(",") if name.strip())


def load_config(environ: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """Build a PipelineConfig from env vars."""
    env = os.environ if environ is None else environ

    cdn = CdnConfig(
        enabled=_flag(env.get("CLOUDFLARE_IMAGES_ENABLED"), True),
        account_id=env.get("CLOUDFLARE_ACCOUNT_ID"),
        api_key=env.get("CLOUDFLARE_IMAGES_API_KEY"),
        api_base=env.get("CLOUDFLARE_API_BASE", CLOUDFLARE_API_BASE),
    )
    storage = ObjectStorageConfig(
        enabled=_flag(env.get("R2_ENABLED"), True),
        account_id=env.get("R2_ACCOUNT_ID"),
        access_key_id=env.get("R2_ACCESS_KEY_ID"),
        secret_access_key=env.get("R2_SECRET_ACCESS_KEY"),
        bucket=env.get("R2_BUCKET", DEFAULT_BUCKET),
        endpoint=env.get("R2_ENDPOINT"),
        public_url=env.get("R2_PUBLIC_URL"),
    )
    return PipelineConfig(
        cdn=cdn,
        object_storage=storage,
        processing_enabled=_flag(env.get("IMAGE_PROCESSING_ENABLED"), True),
        image_attributes=_names(env.get("IMAGE_ATTRIBUTES"), DEFAULT_IMAGE_ATTRIBUTES),
        primary_attributes=_names(env.get("PRIMARY_IMAGE_ATTRIBUTES"), DEFAULT_PRIMARY_ATTRIBUTES),
        base_url=env.get("PIM_BASE_URL") or None,
        concurrency=int(env.get("IMAGE_CONCURRENCY", 3)),
        chunk_delay=float(env.get("IMAGE_CHUNK_DELAY", 0.5)),
        product_concurrency=int(env.get("PRODUCT_CONCURRENCY", 2)),
        product_delay=float(env.get("PRODUCT_CHUNK_DELAY", 2.0)),
        download_timeout=float(env.get("IMAGE_DOWNLOAD_TIMEOUT", 30)),
        image_timeout=float(env.get("IMAGE_TIMEOUT", 120)),
        max_file_size=int(env.get("IMAGE_MAX_BYTES", DEFAULT_MAX_FILE_SIZE)),
        temp_dir=env.get("TEMP_DIR") or tempfile.gettempdir(),
    )


def validate_config(config: PipelineConfig) -> PipelineConfig:
    """Raise ConfigurationError if an enabled backend lacks credentials."""
    problems = config.cdn.problems() + config.object_storage.problems()
    if config.concurrency < 1:
        problems.append("IMAGE_CONCURRENCY must be at least 1")
    if config.product_concurrency < 1:
        problems.append("PRODUCT_CONCURRENCY must be at least 1")
    if problems:
        raise ConfigurationError(problems)
    return config
