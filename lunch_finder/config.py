"""Runtime settings for the lunch location lookup, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

from .discovery_overpass import DEFAULT_MAX_ATTEMPTS, OVERPASS_URL
from .errors import ConfigError

DEFAULT_CACHE_TTL = timedelta(days=1)


@dataclass(frozen=True, slots=True)
class Settings:
    overpass_user_agent: str
    overpass_url: str = OVERPASS_URL
    cache_ttl: timedelta = DEFAULT_CACHE_TTL
    overpass_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    redis_url: Optional[str] = None
    redis_token: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.overpass_user_agent or not self.overpass_user_agent.strip():
            raise ConfigError("OVERPASS_USER_AGENT is required")
        if not self.overpass_url or not self.overpass_url.strip():
            raise ConfigError("OVERPASS_URL must not be empty")
        if self.cache_ttl <= timedelta(0):
            raise ConfigError("Cache TTL must be positive")
        if self.overpass_max_attempts < 1:
            raise ConfigError("OVERPASS_MAX_ATTEMPTS must be >= 1")

    @property
    def redis_enabled(self) -> bool:
        return bool(self.redis_url and self.redis_token)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: object) -> "Settings":
        """Build settings from *environ* (defaults to ``os.environ``).

        Keyword overrides that are not None win over the environment.
        """

        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            "overpass_user_agent": env.get("OVERPASS_USER_AGENT", ""),
            "overpass_url": (env.get("OVERPASS_URL") or OVERPASS_URL).strip(),
            "cache_ttl": timedelta(seconds=_env_int(env, "LOCATIONS_CACHE_TTL_SECONDS", int(DEFAULT_CACHE_TTL.total_seconds()))),
            "overpass_max_attempts": _env_int(env, "OVERPASS_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            "redis_url": env.get("UPSTASH_REDIS_REST_URL") or None,
            "redis_token": env.get("UPSTASH_REDIS_REST_TOKEN") or None,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)  # type: ignore[arg-type]


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
