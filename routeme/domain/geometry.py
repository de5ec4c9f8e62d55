"""
Route geometry helpers.

Distances use the Haversine formula on a spherical Earth (R = 6371 km).
Points are anything exposing ``latitude`` / ``longitude`` attributes, so a
``LocationFix`` or a ``Destination`` can be passed wherever a ``Coordinate``
is expected.

Complexity: O(1) per distance / bearing call, O(n) for route-wide helpers.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

from .entities import BoundingRegion, Coordinate

EARTH_RADIUS_KM = 6_371.0
POLYLINE_PRECISION = 1e5
REGION_PADDING = 1.5  # 50 % padding around the fitted box
MIN_REGION_SPAN = 0.02  # minimum zoom level, in degrees


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(a.latitude), math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlng = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def bearing_degrees(
    origin: Optional[Coordinate], target: Optional[Coordinate]
) -> Optional[float]:
    """Initial bearing (forward azimuth) in degrees, in ``[0, 360)``."""
    if origin is None or target is None:
        return None
    phi1 = math.radians(origin.latitude)
    phi2 = math.radians(target.latitude)
    dlng = math.radians(target.longitude - origin.longitude)

    y = math.sin(dlng) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlng)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def decode_polyline(encoded: str) -> list[Coordinate]:
    """
    Decode an encoded polyline (Google's 5-bit varint format).

    Each value is a zig-zag signed delta from the previous point, split in
    5-bit chunks offset by 63; ``0x20`` marks a continuation chunk.
    Raises ``ValueError`` on a truncated string.
    """
    points: list[Coordinate] = []
    index, lat, lng = 0, 0, 0
    length = len(encoded or "")

    def next_value() -> int:
        nonlocal index
        shift = result = 0
        while True:
            if index >= length:
                raise ValueError("Truncated polyline")
            chunk = ord(encoded[index]) - 63
            index += 1
            result |= (chunk & 0x1F) << shift
            shift += 5
            if chunk < 0x20:
                break
        return ~(result >> 1) if result & 1 else result >> 1

    while index < length:
        lat += next_value()
        lng += next_value()
        points.append(
            Coordinate(lat / POLYLINE_PRECISION, lng / POLYLINE_PRECISION)
        )
    return points


def _nearest_index(
    current: Coordinate, route: Sequence[Coordinate]
) -> tuple[int, float]:
    """Index of the closest route point (first one wins on ties) and its distance."""
    best_idx, best_dist = 0, math.inf
    for i, point in enumerate(route):
        d = distance_km(current, point)
        if d < best_dist:
            best_idx, best_dist = i, d
    return best_idx, best_dist


def has_deviated_from_route(
    current: Optional[Coordinate],
    route: Sequence[Coordinate],
    threshold_km: float = 0.05,
) -> bool:
    """True when *current* is farther than *threshold_km* from every route point."""
    if current is None or not route:
        return False
    _, nearest = _nearest_index(current, route)
    return nearest > threshold_km


def remaining_distance_along_route(
    current: Optional[Coordinate], route: Sequence[Coordinate]
) -> Optional[float]:
    """
    Approximate km left to travel: the hop to the nearest sampled route
    point plus the polyline length from there to the end.
    """
    if current is None or not route:
        return None
    idx, remaining = _nearest_index(current, route)
    for j in range(idx, len(route) - 1):
        remaining += distance_km(route[j], route[j + 1])
    return remaining


def nearest_upcoming_point(
    current: Optional[Coordinate], route: Sequence[Coordinate]
) -> Optional[Coordinate]:
    """The route point after the nearest one (or the last point)."""
    if current is None or not route:
        return None
    idx, _ = _nearest_index(current, route)
    return route[min(idx + 1, len(route) - 1)]


def region_for_coordinates(
    coords: Sequence[Coordinate],
) -> Optional[BoundingRegion]:
    """Centre and padded span that fits every point; ``None`` for no points."""
    if not coords:
        return None
    lats = [c.latitude for c in coords]
    lngs = [c.longitude for c in coords]
    min_lat, max_lat = min(lats), max(lats)
    min_lng, max_lng = min(lngs), max(lngs)

    return BoundingRegion(
        latitude=(min_lat + max_lat) / 2,
        longitude=(min_lng + max_lng) / 2,
        latitude_delta=max((max_lat - min_lat) * REGION_PADDING, MIN_REGION_SPAN),
        longitude_delta=max((max_lng - min_lng) * REGION_PADDING, MIN_REGION_SPAN),
    )


def format_distance(km: float) -> str:
    if km < 1:
        return f"{_round_half_up(km * 1000)} m"
    return f"{km:.2f} km"


def format_duration(minutes: float) -> str:
    if minutes < 60:
        return f"{_round_half_up(minutes)} min"
    hours = math.floor(minutes / 60)
    mins = _round_half_up(minutes % 60)
    if mins == 60:
        hours, mins = hours + 1, 0
    return f"{hours}h {mins}m"
