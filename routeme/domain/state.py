"""
Location / destination / route state container.

One instance per navigation shell.  All writes go through the mutation
methods below; readers get immutable snapshots through properties.  The
route is stored as a single ``RouteSnapshot`` so that RouteInfo and its
coordinates can never be observed out of step with each other.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional

from routeme.domain.entities import (
    Coordinate,
    Destination,
    LocationFix,
    RouteInfo,
    RouteSnapshot,
)
from routeme.domain.enums import EventName
from routeme.infrastructure.event_bus import EventBus

logger = logging.getLogger(__name__)


class LocationState:
    def __init__(self, bus: Optional[EventBus] = None):
        self.bus = bus or EventBus()
        self._current_location: Optional[LocationFix] = None
        self._location_error: Optional[str] = None
        self._destination: Optional[Destination] = None
        self._route: Optional[RouteSnapshot] = None
        self._is_loading_route = False
        self._is_journey_active = False

    # ── Read side ─────────────────────────────────────────────────────

    @property
    def current_location(self) -> Optional[LocationFix]:
        return self._current_location

    @property
    def location_error(self) -> Optional[str]:
        return self._location_error

    @property
    def destination(self) -> Optional[Destination]:
        return self._destination

    @property
    def route(self) -> Optional[RouteSnapshot]:
        return self._route

    @property
    def route_info(self) -> Optional[RouteInfo]:
        return self._route.info if self._route else None

    @property
    def route_coordinates(self) -> tuple[Coordinate, ...]:
        return self._route.coordinates if self._route else ()

    @property
    def is_loading_route(self) -> bool:
        return self._is_loading_route

    @property
    def is_journey_active(self) -> bool:
        return self._is_journey_active

    # ── Mutations ─────────────────────────────────────────────────────

    def set_current_location(self, fix: LocationFix) -> None:
        self._current_location = fix
        self._location_error = None

    def set_location_error(self, message: str) -> None:
        self._location_error = message

    def set_destination(self, destination: Destination) -> None:
        """Replace the destination; the previous route is dropped and a fetch is expected."""
        logger.info("New destination: %s", destination.name or "(unnamed)")
        self._destination = destination
        self._route = None
        self._is_loading_route = True
        self.bus.emit(EventName.SELECTION_MADE, destination)

    def merge_destination_meta(self, **updates: Any) -> Destination:
        """Merge fields into the destination; with none set, coordinates are required."""
        if self._destination is None:
            if "latitude" not in updates or "longitude" not in updates:
                raise ValueError(
                    "No destination to merge into; latitude and longitude are required"
                )
            self._destination = Destination(**updates)
        else:
            self._destination = dataclasses.replace(self._destination, **updates)
        return self._destination

    def clear_destination(self) -> None:
        logger.info("Clearing destination")
        self._destination = None
        self._route = None
        self._is_journey_active = False

    def set_route(self, info: RouteInfo, coordinates: list[Coordinate]) -> None:
        logger.info(
            "Route updated: %.1fkm, %.0fmin", info.distance_km, info.duration_min
        )
        self._route = RouteSnapshot(info=info, coordinates=tuple(coordinates))

    def set_route_loading(self, loading: bool) -> None:
        self._is_loading_route = loading

    def start_journey(self) -> None:
        logger.info("Journey started")
        self._is_journey_active = True

    def stop_journey(self) -> None:
        logger.info("Journey stopped")
        self._is_journey_active = False
