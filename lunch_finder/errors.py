"""Failures raised by the lunch location lookup."""

from __future__ import annotations


class LunchFinderError(RuntimeError):
    """Base class for every error raised by this package."""


class ConfigError(LunchFinderError):
    """Raised when required settings are missing or invalid."""


class UpstreamRejectedError(LunchFinderError):
    """Raised when Overpass answers with a non-success status code."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Received an undesirable response from the Overpass API (HTTP {status_code})")
        self.status_code = status_code
        self.body = body


class UpstreamEmptyOrMalformedError(LunchFinderError):
    """Raised when the Overpass body is null, empty or not shaped like a response."""


class UnknownAmenityError(LunchFinderError):
    """Raised when Overpass returns an amenity outside the supported set."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Unknown amenity {value!r}")
        self.value = value


class TransportFailureError(LunchFinderError):
    """Raised when the Overpass request fails below the HTTP layer."""
