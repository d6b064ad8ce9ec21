"""Data models returned by the lunch location lookup."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Amenity(str, Enum):
    """Kinds of eateries we ask Overpass for, valued by their OSM spelling."""

    RESTAURANT = "restaurant"
    CAFE = "cafe"
    FAST_FOOD = "fast_food"
    PUB = "pub"
    BAR = "bar"
    ICE_CREAM = "ice_cream"
    FOOD_COURT = "food_court"


@dataclass(frozen=True, slots=True)
class Coordinates:
    longitude: float
    latitude: float


@dataclass(frozen=True, slots=True)
class Location:
    """A place that is open for lunch."""

    name: str
    coordinates: Coordinates
    amenity: Amenity
    url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "coordinates": {
                "longitude": self.coordinates.longitude,
                "latitude": self.coordinates.latitude,
            },
            "amenity": self.amenity.value,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Location":
        coordinates = data["coordinates"]
        return cls(
            name=data["name"],
            coordinates=Coordinates(
                longitude=float(coordinates["longitude"]),
                latitude=float(coordinates["latitude"]),
            ),
            amenity=Amenity(data["amenity"]),
            url=data.get("url"),
        )
