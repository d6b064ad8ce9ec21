"""Turn Overpass nodes into public :class:`Location` values."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import urlparse

from .errors import UnknownAmenityError
from .models import Amenity, Coordinates, Location

if TYPE_CHECKING:
    from .discovery_overpass import OverpassNode

# Most specific link first: a menu beats a generic homepage.
WEBSITE_TAG_KEYS = ("website:menu", "website", "contact:website", "url")

_AMENITIES = {amenity.value: amenity for amenity in Amenity}
_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.-]*")


def map_amenity(value: str) -> Amenity:
    try:
        return _AMENITIES[value]
    except (KeyError, TypeError):
        raise UnknownAmenityError(value) from None


def map_url(extra: Mapping[str, Any] | None) -> str | None:
    """Return the first candidate tag value that is an absolute URI.

    Any scheme is accepted, so `mailto:` and `tel:` links count. Values
    written as `scheme://...` must also name a host.
    """

    if not extra:
        return None
    for key in WEBSITE_TAG_KEYS:
        value = extra.get(key)
        if not isinstance(value, str):
            continue
        uri = _absolute_uri(value)
        if uri is not None:
            return uri
    return None


def map_location(node: "OverpassNode") -> Location:
    tags = node.tags
    if tags is None or tags.name is None:
        raise ValueError(f"Cannot map an unnamed node at ({node.longitude}, {node.latitude})")
    return Location(
        name=tags.name,
        coordinates=Coordinates(longitude=node.longitude, latitude=node.latitude),
        amenity=map_amenity(tags.amenity),
        url=map_url(tags.extra),
    )


def _absolute_uri(value: str) -> str | None:
    candidate = value.strip()
    if not candidate or any(char.isspace() for char in candidate):
        return None
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None
    if not _SCHEME.fullmatch(parsed.scheme):
        return None
    # Hierarchical URIs need a host; opaque ones (mailto:, tel:) need a body.
    if "://" in candidate:
        return candidate if parsed.netloc else None
    return candidate if len(candidate) > len(parsed.scheme) + 1 else None
