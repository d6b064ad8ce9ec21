"""Cache backends and the single-flight cache-aside wrapper."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional, Protocol, Sequence
from urllib.parse import quote

import httpx

from .errors import TransportFailureError
from .models import Location

logger = logging.getLogger(__name__)

UPSTASH_KEY_PREFIX = "lunch:locations:"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[list[Location]]:
        ...

    async def set(self, key: str, value: Sequence[Location], ttl: timedelta) -> None:
        ...


class InMemoryCache:
    """Process-local cache with absolute (wall-clock) expiry."""

    def __init__(self, *, clock: Clock = _utc_now) -> None:
        self._clock = clock
        self._entries: Dict[str, tuple[datetime, list[Location]]] = {}

    async def get(self, key: str) -> Optional[list[Location]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return list(value)

    async def set(self, key: str, value: Sequence[Location], ttl: timedelta) -> None:
        now = self._clock()
        self._purge_expired(now)
        self._entries[key] = (now + ttl, list(value))

    def _purge_expired(self, now: datetime) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))

    def __len__(self) -> int:
        return len(self._entries)


class UpstashRedisCache:
    """Shared cache stored in Upstash Redis through its REST API.

    The cache is best-effort: backend failures are logged and behave like a
    miss (on read) or a skipped write.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url: str,
        token: str,
        request_timeout: float = 5.0,
    ) -> None:
        self._client = client
        self._url = url.rstrip("/")
        self._token = token
        self._timeout = httpx.Timeout(request_timeout, connect=3.0)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    def _key(self, key: str) -> str:
        return quote(f"{UPSTASH_KEY_PREFIX}{key}", safe="")

    async def get(self, key: str) -> Optional[list[Location]]:
        try:
            resp = await self._client.get(
                f"{self._url}/get/{self._key(key)}",
                headers=self._headers(),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Upstash GET failed for %r: %s", key, exc)
            return None
        if resp.status_code != 200:
            logger.warning("Upstash GET for %r returned HTTP %s", key, resp.status_code)
            return None
        try:
            raw = resp.json().get("result")
            if raw is None:
                return None
            return [Location.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unreadable cache entry for %r: %s", key, exc)
            return None

    async def set(self, key: str, value: Sequence[Location], ttl: timedelta) -> None:
        seconds = max(1, int(ttl.total_seconds()))
        body = json.dumps([location.to_dict() for location in value], ensure_ascii=False)
        try:
            resp = await self._client.post(
                f"{self._url}/setex/{self._key(key)}/{seconds}",
                headers=self._headers(),
                content=body.encode("utf-8"),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Upstash SETEX failed for %r: %s", key, exc)
            return
        if resp.status_code != 200:
            logger.warning("Upstash SETEX for %r returned HTTP %s", key, resp.status_code)


class SingleFlightCache:
    """Cache-aside wrapper allowing at most one computation per key at a time.

    The first caller to miss owns the computation; concurrent callers for the
    same key await its outcome. Failures are shared with the waiters and never
    stored, so the next request computes again.
    """

    def __init__(self, backend: CacheBackend) -> None:
        self._backend = backend
        self._in_flight: Dict[str, asyncio.Future[list[Location]]] = {}

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    async def get(self, key: str) -> Optional[list[Location]]:
        return await self._backend.get(key)

    async def set(self, key: str, value: Sequence[Location], ttl: timedelta) -> None:
        await self._backend.set(key, value, ttl)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[list[Location]]],
        ttl: timedelta,
    ) -> list[Location]:
        cached = await self._backend.get(key)
        if cached is not None:
            logger.info("Cache hit for %r", key)
            return cached

        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            logger.info("Waiting on in-flight fetch for %r", key)
            # A waiter giving up must not cancel the owner's fetch.
            return list(await asyncio.shield(in_flight))

        future: asyncio.Future[list[Location]] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            value = await self._backend.get(key)
            if value is None:
                logger.info("Cache miss for %r", key)
                value = await compute()
                await self._backend.set(key, value, ttl)
        except asyncio.CancelledError:
            _fail(future, TransportFailureError(f"Fetch for {key!r} was cancelled"))
            raise
        except Exception as exc:
            _fail(future, exc)
            raise
        else:
            future.set_result(value)
            return list(value)
        finally:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight


def _fail(future: asyncio.Future, exc: BaseException) -> None:
    future.set_exception(exc)
    # Mark as retrieved so a failure nobody waited on is not reported by asyncio.
    future.exception()
