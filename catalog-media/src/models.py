"""Data records passed between the media pipeline stages."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

CDN_SERVICE = "cdn"
OBJECT_STORAGE_SERVICE = "object_storage"

# error recorded for work a shutdown prevented from starting
CANCELLED = "cancelled"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Provenance(str, Enum):
    DECLARED = "declared"
    DISCOVERED = "discovered"


class Outcome(str, Enum):
    """Tagged result of processing one image or one product."""

    PROCESSED = "processed"
    FALLBACK = "fallback"
    FAILED = "failed"


@dataclass(frozen=True)
class ImageReference:
    """An image URL found in a product's attribute values."""

    url: str
    attribute: str
    index: int
    scope: Optional[str] = None
    locale: Optional[str] = None
    provenance: Provenance = Provenance.DECLARED
    sku: Optional[str] = None
    uuid: Optional[str] = None
    family: Optional[str] = None

    @property
    def discovered(self) -> bool:
        return self.provenance is Provenance.DISCOVERED


@dataclass(frozen=True)
class DiscoveryWarning:
    """A candidate value that was dropped during extraction."""

    attribute: str
    index: int
    value: str
    reason: str


@dataclass
class DownloadedAsset:
    """Image bytes written to a local temporary file."""

    temp_path: Path
    filename: str
    content_type: str
    size: int
    original_url: str


@dataclass
class BackendUploadResult:
    """Outcome of one upload attempt against one backend."""

    service: str
    url: Optional[str] = None
    id: Optional[str] = None
    key: Optional[str] = None
    etag: Optional[str] = None
    variants: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.url)

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"error": self.error}
        data = {"service": self.service, "url": self.url}
        if self.id is not None:
            data["id"] = self.id
        if self.key is not None:
            data["key"] = self.key
        if self.etag is not None:
            data["etag"] = self.etag
        if self.variants:
            data["variants"] = list(self.variants)
        return data


@dataclass(frozen=True)
class ImageVariants:
    thumbnail: str
    medium: str
    large: str
    original: str

    @classmethod
    def single(cls, url: str) -> "ImageVariants":
        return cls(thumbnail=url, medium=url, large=url, original=url)

    def to_dict(self) -> dict:
        return {
            "thumbnail": self.thumbnail,
            "medium": self.medium,
            "large": self.large,
            "original": self.original,
        }


@dataclass
class ProcessedImage:
    """Normalized descriptor for one product image."""

    original_url: str
    primary_url: str
    variants: ImageVariants
    alt: str
    sort_order: int
    attribute: str
    scope: Optional[str] = None
    locale: Optional[str] = None
    provenance: Provenance = Provenance.DECLARED
    services: dict[str, BackendUploadResult] = field(default_factory=dict)
    fallback: bool = False
    error: Optional[str] = None
    processed_at: str = field(default_factory=utc_now_iso)

    @property
    def outcome(self) -> Outcome:
        return Outcome.FALLBACK if self.fallback else Outcome.PROCESSED

    def to_dict(self) -> dict:
        return {
            "original_url": self.original_url,
            "primary_url": self.primary_url,
            "services": {name: result.to_dict() for name, result in self.services.items()},
            "variants": self.variants.to_dict(),
            "alt": self.alt,
            "sort_order": self.sort_order,
            "attribute": self.attribute,
            "scope": self.scope,
            "locale": self.locale,
            "provenance": self.provenance.value,
            "fallback": self.fallback,
            "error": self.error,
            "processed_at": self.processed_at,
        }


@dataclass
class ProductImagesResult:
    """All processed images for one product."""

    product_identifier: Optional[str]
    product_uuid: Optional[str]
    images: list[ProcessedImage] = field(default_factory=list)
    warnings: list[DiscoveryWarning] = field(default_factory=list)
    error: Optional[str] = None
    skipped: bool = False
    processed_at: str = field(default_factory=utc_now_iso)

    @property
    def outcome(self) -> Outcome:
        if self.error is not None:
            return Outcome.FAILED
        if any(image.fallback for image in self.images):
            return Outcome.FALLBACK
        return Outcome.PROCESSED


@dataclass
class BatchReport:
    """Summary of a multi-product run: {processed, total, errors}."""

    processed: int
    total: int
    errors: list[dict] = field(default_factory=list)
    results: list[ProductImagesResult] = field(default_factory=list)

    @property
    def interrupted(self) -> bool:
        """True if a shutdown left any product or image unprocessed."""
        return any(
            result.error == CANCELLED or any(image.error == CANCELLED for image in result.images)
            for result in self.results
        )

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "total": self.total,
            "errors": list(self.errors),
            "message": f"Processed images for {self.processed} out of {self.total} products",
        }


@dataclass
class PipelineMetrics:
    """Counter sink shared by the pipeline stages."""

    counts: Counter = field(default_factory=Counter)

    def incr(self, name: str, amount: int = 1):
        self.counts[name] += amount

    def snapshot(self) -> dict:
        return dict(self.counts)
