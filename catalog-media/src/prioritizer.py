"""Orders image references so primary images come first."""

from typing import Iterable

from catalog_media.config import DEFAULT_PRIMARY_ATTRIBUTES
from catalog_media.models import ImageReference


def prioritize_references(
    references: Iterable[ImageReference],
    primary_attributes: Iterable[str] = DEFAULT_PRIMARY_ATTRIBUTES,
) -> list[ImageReference]:
    """Stable sort: primary attributes first, then by index within the attribute."""
    primary = set(primary_attributes)
    return sorted(references, key=lambda ref: (ref.attribute not in primary, ref.index))
