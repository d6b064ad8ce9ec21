"""Helpers for querying the Overpass API for lunch venues."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from .errors import TransportFailureError, UpstreamEmptyOrMalformedError, UpstreamRejectedError
from .lunch_hours import OpeningHoursGate, is_open_at_lunch
from .mapping import map_location
from .models import Amenity, Location

logger = logging.getLogger(__name__)

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
OVERPASS_TIMEOUT_SECONDS = 25
# OSM relation of Sweden; every boundary match must lie inside it.
DEFAULT_REGION_RELATION_ID = 52822
DEFAULT_MAX_ATTEMPTS = 3

AMENITY_REGEX = "|".join(amenity.value for amenity in Amenity)


@dataclass(slots=True)
class OverpassTags:
    """Tags of an Overpass node; ``extra`` keeps every tag we do not model."""

    amenity: Any
    name: Optional[str] = None
    opening_hours: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class OverpassNode:
    longitude: float
    latitude: float
    tags: Optional[OverpassTags]


@dataclass(slots=True)
class UnknownElement:
    """Any element that is not a node (ways, relations, areas...)."""

    type: Optional[str]


OverpassElement = Union[OverpassNode, UnknownElement]


def build_query(
    area_name: str,
    *,
    timeout_seconds: int = OVERPASS_TIMEOUT_SECONDS,
    region_relation_id: int | None = DEFAULT_REGION_RELATION_ID,
) -> str:
    """Build an Overpass QL query for named eateries inside *area_name*.

    The area name is matched case-insensitively as a substring of an
    administrative boundary's name. It is inserted into the query verbatim.
    """

    if not area_name or not area_name.strip():
        raise ValueError("An area name must be provided")

    if region_relation_id is not None:
        region = f"""
relation({region_relation_id}) -> .region;
.region map_to_area -> .regionArea;
"""
        region_filter = "\n    (area.regionArea)"
    else:
        region = ""
        region_filter = ""

    query = f"""
[out:json][timeout:{timeout_seconds}];
{region}
relation["boundary"]
    ["name"~"{area_name}",i]
        -> .boundaries;

.boundaries map_to_area -> .searchArea;

node[amenity~"^({AMENITY_REGEX})$"]
    [name]
    (area.searchArea){region_filter};

out center;
"""
    return "\n".join(line.rstrip() for line in query.strip().splitlines()) + "\n"


def validate_area_name(area_name: str) -> str:
    """Return the stripped area name, rejecting values that would break the query literal."""

    stripped = (area_name or "").strip()
    if not stripped:
        raise ValueError("An area name must be provided")
    if any(char in stripped for char in ('"', "\\", "\n", "\r")):
        raise ValueError(f"Area name {area_name!r} contains characters that are not allowed")
    return stripped


def _parse_coordinate(value: Any) -> float:
    # Overpass sometimes encodes numbers as strings.
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Not a coordinate: {value!r}")
    try:
        coordinate = float(value.strip() if isinstance(value, str) else value)
    except OverflowError:
        raise ValueError(f"Coordinate out of range: {value!r}") from None
    if not math.isfinite(coordinate):
        raise ValueError(f"Not a finite coordinate: {value!r}")
    return coordinate


def _parse_tags(raw: Any) -> OverpassTags | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ValueError(f"Node tags must be an object, got {type(raw).__name__}")
    extra = {key: value for key, value in raw.items() if key not in {"name", "amenity", "opening_hours"}}
    name = raw.get("name")
    opening_hours = raw.get("opening_hours")
    return OverpassTags(
        amenity=raw.get("amenity"),
        name=name if isinstance(name, str) else None,
        opening_hours=opening_hours if isinstance(opening_hours, str) else None,
        extra=extra,
    )


def parse_element(raw: Any) -> OverpassElement:
    """Decode a single entry of the ``elements`` list."""

    if not isinstance(raw, Mapping):
        raise ValueError(f"Element must be an object, got {type(raw).__name__}")
    element_type = raw.get("type")
    if element_type != "node":
        return UnknownElement(type=element_type if isinstance(element_type, str) else None)
    return OverpassNode(
        longitude=_parse_coordinate(raw.get("lon")),
        latitude=_parse_coordinate(raw.get("lat")),
        tags=_parse_tags(raw.get("tags")),
    )


def parse_elements(payload: Any) -> list[OverpassElement]:
    """Decode an Overpass JSON document into typed elements, in upstream order."""

    if not isinstance(payload, Mapping):
        raise UpstreamEmptyOrMalformedError("Received a null or non-object response from the Overpass API")
    elements = payload.get("elements")
    if not isinstance(elements, list):
        raise UpstreamEmptyOrMalformedError("Overpass response has no 'elements' list")
    try:
        return [parse_element(element) for element in elements]
    except ValueError as exc:
        raise UpstreamEmptyOrMalformedError(f"Overpass response could not be decoded: {exc}") from exc


def nodes_to_locations(
    elements: list[OverpassElement],
    *,
    gate: OpeningHoursGate = is_open_at_lunch,
) -> list[Location]:
    """Keep named nodes open at lunch and map them, preserving order."""

    locations: list[Location] = []
    for element in elements:
        if not isinstance(element, OverpassNode):
            continue
        tags = element.tags
        if tags is None or tags.name is None:
            logger.debug("Skipping node without name tags at (%f, %f)", element.longitude, element.latitude)
            continue
        if tags.opening_hours is not None and not gate(tags.opening_hours):
            logger.debug("Skipping %s: closed at lunch (%s)", tags.name, tags.opening_hours)
            continue
        locations.append(map_location(element))
    return locations


async def _post_with_retries(
    client: httpx.AsyncClient,
    url: str,
    query: str,
    *,
    user_agent: str,
    max_attempts: int,
) -> httpx.Response:
    """POST *query*, retrying only network-level failures."""

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential_jitter(initial=1.0, max=5.0),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            attempt_number = attempt.retry_state.attempt_number
            if attempt_number > 1:
                logger.warning("Retrying Overpass request to %s (attempt %d)", url, attempt_number)
            return await client.post(
                url,
                content=query.encode("utf-8"),
                headers={"User-Agent": user_agent},
            )
    raise AssertionError("unreachable")  # pragma: no cover


async def fetch_locations(
    area_name: str,
    *,
    client: httpx.AsyncClient,
    user_agent: str,
    overpass_url: str = OVERPASS_URL,
    gate: OpeningHoursGate = is_open_at_lunch,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    region_relation_id: int | None = DEFAULT_REGION_RELATION_ID,
) -> list[Location]:
    """Query Overpass for *area_name* and return the venues open at lunch."""

    query = build_query(area_name, region_relation_id=region_relation_id)
    logger.info("Fetching lunch locations for area='%s' from %s", area_name, overpass_url)

    try:
        response = await _post_with_retries(
            client,
            overpass_url,
            query,
            user_agent=user_agent,
            max_attempts=max_attempts,
        )
    except httpx.DecodingError as exc:
        raise UpstreamEmptyOrMalformedError(f"Overpass response could not be decoded: {exc}") from exc
    except httpx.RequestError as exc:
        raise TransportFailureError(f"Overpass request failed: {exc}") from exc

    if not response.is_success:
        raise UpstreamRejectedError(response.status_code, response.text)

    text = response.text
    logger.debug("Received the following response from the Overpass API: %s", text)

    if not text.strip():
        raise UpstreamEmptyOrMalformedError("Received an empty body from the Overpass API")
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise UpstreamEmptyOrMalformedError("Overpass response was not valid JSON") from exc

    locations = nodes_to_locations(parse_elements(payload), gate=gate)
    logger.info("Found %d lunch locations in '%s'", len(locations), area_name)
    return locations
