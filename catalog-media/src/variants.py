"""Display-size variant URLs.

Cloudflare Images delivery URLs look like
https://imagedelivery.net/<account hash>/<image id>/<variant name>. Swapping the
last path segment for a flexible-variant directive resizes on the CDN. Without
a usable CDN result every variant is the primary URL.
"""

from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from catalog_media.models import BackendUploadResult, ImageVariants

VARIANT_DIRECTIVES = {
    "thumbnail": "w=150,h=150,fit=crop",
    "medium": "w=500,h=500,fit=scale-down",
    "large": "w=1200,h=1200,fit=scale-down",
}


def _with_directive(url: str, directive: str) -> str:
    parts = urlsplit(url)
    segments = parts.path.rstrip("/").split("/")
    segments[-1] = directive
    return urlunsplit(parts._replace(path="/".join(segments)))


def is_transformable(primary_url: str, cdn_result: Optional[BackendUploadResult]) -> bool:
    if cdn_result is None or not cdn_result.ok or not cdn_result.variants:
        return False
    if cdn_result.url != primary_url:
        return False
    # leading "", account hash, image id, variant name
    return len(urlsplit(primary_url).path.rstrip("/").split("/")) >= 4


def generate_variants(primary_url: str, cdn_result: Optional[BackendUploadResult] = None) -> ImageVariants:
    """Return thumbnail/medium/large/original URLs for primary_url."""
    if not is_transformable(primary_url, cdn_result):
        return ImageVariants.single(primary_url)
    return ImageVariants(
        thumbnail=_with_directive(primary_url, VARIANT_DIRECTIVES["thumbnail"]),
        medium=_with_directive(primary_url, VARIANT_DIRECTIVES["medium"]),
        large=_with_directive(primary_url, VARIANT_DIRECTIVES["large"]),
        original=primary_url,
    )
