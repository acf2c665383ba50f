"""Alt text and the catalog-facing image shape."""

from typing import Iterable, Optional

from catalog_media.config import DEFAULT_NAME_ATTRIBUTES
from catalog_media.models import CDN_SERVICE, OBJECT_STORAGE_SERVICE, ImageReference, ProcessedImage


def extract_product_name(product: dict, name_attributes: Iterable[str] = DEFAULT_NAME_ATTRIBUTES) -> Optional[str]:
    """First non-empty value among the name-like attributes."""
    values = product.get("values") or {}
    for attribute in name_attributes:
        entries = values.get(attribute)
        if not isinstance(entries, list):
            continue
        for item in entries:
            if isinstance(item, dict) and item.get("data"):
                return str(item["data"])
    return None


def generate_alt_text(product: dict, reference: ImageReference,
                      name_attributes: Iterable[str] = DEFAULT_NAME_ATTRIBUTES) -> str:
    base = extract_product_name(product, name_attributes) or product.get("identifier") or "Product Image"
    if reference.index > 0:
        return f"{base} - Image {reference.index + 1}"
    return base


def to_catalog_images(images: Iterable[ProcessedImage]) -> list[dict]:
    """Map processed images onto the storefront catalog record shape."""
    catalog = []
    for image in images:
        cdn = image.services.get(CDN_SERVICE)
        storage = image.services.get(OBJECT_STORAGE_SERVICE)
        catalog.append({
            "url": image.primary_url,
            "alt": image.alt or "",
            "sort_order": image.sort_order,
            "variants": image.variants.to_dict(),
            "metadata": {
                "cdn_id": cdn.id if cdn is not None and cdn.ok else None,
                "object_storage_key": storage.key if storage is not None and storage.ok else None,
                "processed_at": image.processed_at,
                "fallback": image.fallback,
                "attribute": image.attribute,
                "scope": image.scope,
                "locale": image.locale,
            },
        })
    return catalog
