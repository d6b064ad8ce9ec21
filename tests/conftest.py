"""Shared pytest fixtures and helpers for all tests."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from lunch_finder.config import Settings

OVERPASS_URL = "https://overpass.test/api/interpreter"
USER_AGENT = "LunchFinderTests/1.0 (+https://example.com/contact)"


def make_node(
    name: str | None = "Café X",
    amenity: str = "cafe",
    *,
    lon: Any = "18.0",
    lat: Any = "59.3",
    opening_hours: str | None = None,
    extra_tags: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a raw Overpass node the way the API returns it."""

    tags: dict[str, Any] = {"amenity": amenity}
    if name is not None:
        tags["name"] = name
    if opening_hours is not None:
        tags["opening_hours"] = opening_hours
    tags.update(extra_tags or {})
    return {"type": "node", "lon": lon, "lat": lat, "tags": tags}


def overpass_body(*elements: dict[str, Any]) -> bytes:
    return json.dumps({"version": 0.6, "elements": list(elements)}).encode("utf-8")


class RecordingTransport(httpx.AsyncBaseTransport):
    """Mock transport that records requests and answers through *handler*."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self._transport = httpx.MockTransport(handler)
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return await self._transport.handle_async_request(request)


def respond_with(body: bytes, status_code: int = 200) -> RecordingTransport:
    return RecordingTransport(lambda request: httpx.Response(status_code, content=body))


@pytest.fixture
def settings() -> Settings:
    return Settings(overpass_user_agent=USER_AGENT, overpass_url=OVERPASS_URL, overpass_max_attempts=1)


def always_open(pattern: str) -> bool:
    return True


def never_open(pattern: str) -> bool:
    return False
