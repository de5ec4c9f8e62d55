"""
Domain entities.

Value objects are frozen so that a snapshot handed to a consumer can never be
mutated behind the state container's back.  ``LocationFix`` and
``Destination`` extend ``Coordinate`` and share its range checks.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional


class InvalidCoordinate(ValueError):
    """Raised when a latitude, longitude or heading is out of range."""


def now_ms() -> int:
    return int(time.time() * 1000)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidCoordinate(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidCoordinate(f"longitude out of range: {self.longitude}")

    def as_coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def same_point(self, other: Optional[Coordinate]) -> bool:
        return (
            other is not None
            and self.latitude == other.latitude
            and self.longitude == other.longitude
        )


@dataclass(frozen=True)
class LocationFix(Coordinate):
    """A single device position sample, replaced wholesale on every update."""

    heading: Optional[float] = None
    latitude_delta: Optional[float] = None
    longitude_delta: Optional[float] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.heading is not None and not 0.0 <= self.heading <= 360.0:
            raise InvalidCoordinate(f"heading out of range: {self.heading}")


@dataclass(frozen=True)
class Destination(Coordinate):
    name: str = ""
    address: str = ""
    place_id: Optional[str] = None
    favorite: bool = False
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class BoundingRegion:
    latitude: float
    longitude: float
    latitude_delta: float
    longitude_delta: float


@dataclass(frozen=True)
class RouteStep:
    instruction: str
    distance_text: str
    duration_text: str


@dataclass(frozen=True)
class RouteInfo:
    distance_km: float
    duration_min: float
    steps: tuple[RouteStep, ...] = ()


@dataclass(frozen=True)
class RouteSnapshot:
    """RouteInfo and its decoded geometry, always swapped together."""

    info: RouteInfo
    coordinates: tuple[Coordinate, ...]


@dataclass(frozen=True)
class JourneyProgress:
    remaining_km: float
    remaining_text: str
    eta_min: float
    eta_text: str
    bearing_deg: Optional[float] = None
