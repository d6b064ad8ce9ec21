"""Cached lookup of lunch locations by area name."""

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence

import httpx

from .cache import InMemoryCache, SingleFlightCache, UpstashRedisCache
from .config import Settings
from .discovery_overpass import fetch_locations
from .models import Location
from .lunch_hours import OpeningHoursGate, is_open_at_lunch

logger = logging.getLogger(__name__)


def build_cache(settings: Settings, client: httpx.AsyncClient) -> SingleFlightCache:
    """Use the shared Upstash cache when configured, otherwise a local one."""

    redis_url, redis_token = settings.redis_url, settings.redis_token
    if redis_url and redis_token:
        logger.info("Using Upstash Redis cache at %s", redis_url)
        return SingleFlightCache(UpstashRedisCache(client, url=redis_url, token=redis_token))
    logger.info("Using in-memory cache")
    return SingleFlightCache(InMemoryCache())


def pick_one(locations: Sequence[Location], rng: random.Random) -> Optional[Location]:
    if not locations:
        return None
    return rng.choice(list(locations))


class LocationsService:
    """Answers "where can I eat lunch in this area?" with a cache in front of Overpass."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        cache: SingleFlightCache | None = None,
        *,
        gate: OpeningHoursGate = is_open_at_lunch,
    ) -> None:
        self._settings = settings
        self._client = client
        self._cache = cache if cache is not None else build_cache(settings, client)
        self._gate = gate

    async def get_locations_in(self, area_name: str) -> list[Location]:
        """Return locations open at lunch in *area_name*.

        The raw area name is the cache key. Failed fetches are not cached.
        """

        return await self._cache.get_or_compute(
            area_name,
            lambda: self._fetch_locations_in(area_name),
            self._settings.cache_ttl,
        )

    async def get_random_location_in(
        self,
        area_name: str,
        rng: random.Random | None = None,
    ) -> Optional[Location]:
        locations = await self.get_locations_in(area_name)
        return pick_one(locations, rng or random.Random())

    async def _fetch_locations_in(self, area_name: str) -> list[Location]:
        return await fetch_locations(
            area_name,
            client=self._client,
            user_agent=self._settings.overpass_user_agent,
            overpass_url=self._settings.overpass_url,
            gate=self._gate,
            max_attempts=self._settings.overpass_max_attempts,
        )
