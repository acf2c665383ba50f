"""Finds image references inside a PIM product's attribute values.

Two passes run over `product["values"]`:

1. Declared: every configured image attribute is read and any entry whose
   `data` is a URL string (or an object exposing url/path/href) is taken.
2. Discovered: every other attribute is scanned with a best-effort heuristic
   (file extension or a /media/ or /image/ path segment). Hits are tagged
   Provenance.DISCOVERED. The heuristic can misfire on values that merely
   contain an extension, e.g. a SKU like "BOX.png-01".
"""

import logging
import re
from typing import Iterable, Optional
from urllib.parse import urlparse

from catalog_media.config import DEFAULT_IMAGE_ATTRIBUTES
from catalog_media.models import DiscoveryWarning, ImageReference, Provenance

logger = logging.getLogger(__name__)

IMAGE_EXTENSION_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)$", re.IGNORECASE)
IMAGE_PATH_MARKERS = ("/media/", "/image/", ".jpg", ".png")
URL_KEYS = ("url", "path", "href")


def raw_image_value(data) -> Optional[str]:
    """Return the URL-ish string carried by an attribute's `data`, if any."""
    if isinstance(data, dict):
        data = next((data[key] for key in URL_KEYS if data.get(key)), None)
    if isinstance(data, str) and data:
        return data
    return None


def looks_like_image(data) -> bool:
    """Heuristic test for undeclared attributes."""
    if isinstance(data, str):
        return bool(IMAGE_EXTENSION_RE.search(data)) or any(marker in data for marker in IMAGE_PATH_MARKERS)
    if isinstance(data, dict):
        return any(data.get(key) for key in URL_KEYS)
    return False


def resolve_url(value: str, base_url: Optional[str] = None) -> str:
    """Prefix root-relative paths with the PIM base URL."""
    if base_url and value.startswith("/"):
        return base_url.rstrip("/") + value
    return value


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _entries(values: dict, attribute: str) -> list:
    entries = values.get(attribute)
    return entries if isinstance(entries, list) else []


def extract_image_references(
    product: dict,
    base_url: Optional[str] = None,
    image_attributes: Iterable[str] = DEFAULT_IMAGE_ATTRIBUTES,
    warnings: Optional[list] = None,
    log: Optional[logging.Logger] = None,
) -> list[ImageReference]:
    """Return every image reference in discovery order.

    Invalid candidates are dropped; a DiscoveryWarning is appended to
    `warnings` when a list is given.
    """
    log = log or logger
    values = product.get("values") or {}
    if not isinstance(values, dict):
        return []

    declared = list(dict.fromkeys(image_attributes))
    seen: set[tuple[str, int]] = set()
    references: list[ImageReference] = []

    def take(attribute: str, index: int, item: dict, provenance: Provenance):
        if (attribute, index) in seen:
            return
        raw = raw_image_value(item.get("data"))
        if raw is None:
            return
        url = resolve_url(raw, base_url)
        if not is_valid_url(url):
            log.warning(f"Invalid image URL in {attribute}[{index}]: {url}")
            if warnings is not None:
                warnings.append(DiscoveryWarning(attribute, index, url, "invalid url"))
            return
        seen.add((attribute, index))
        references.append(ImageReference(
            url=url,
            attribute=attribute,
            index=index,
            scope=item.get("scope"),
            locale=item.get("locale"),
            provenance=provenance,
            sku=product.get("identifier"),
            uuid=product.get("uuid"),
            family=product.get("family"),
        ))

    for attribute in declared:
        for index, item in enumerate(_entries(values, attribute)):
            if isinstance(item, dict) and item.get("data"):
                take(attribute, index, item, Provenance.DECLARED)

    for attribute in values:
        if attribute in declared:
            continue
        for index, item in enumerate(_entries(values, attribute)):
            if isinstance(item, dict) and looks_like_image(item.get("data")):
                take(attribute, index, item, Provenance.DISCOVERED)

    log.info(f"Found {len(references)} images for product {product.get('identifier') or product.get('uuid')}")
    return references
