"""Find places to eat lunch in an area using OpenStreetMap data."""

from .errors import (
    ConfigError,
    LunchFinderError,
    TransportFailureError,
    UnknownAmenityError,
    UpstreamEmptyOrMalformedError,
    UpstreamRejectedError,
)
from .models import Amenity, Coordinates, Location
from .service import LocationsService, pick_one

__all__ = [
    "Amenity",
    "ConfigError",
    "Coordinates",
    "Location",
    "LocationsService",
    "LunchFinderError",
    "TransportFailureError",
    "UnknownAmenityError",
    "UpstreamEmptyOrMalformedError",
    "UpstreamRejectedError",
    "pick_one",
]
