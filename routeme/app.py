"""
Navigation shell factory.

* Composes one state container, its event bus, the search history, the maps
  client, the routing fetch and the deviation monitor.
* Exposes the flows the screens drive (select a place, name a dropped pin,
  toggle a favorite, start / stop a journey, report journey progress).
* ``lifespan()`` starts the deviation monitor and tears everything down on
  exit: monitor task, location watch, HTTP client and storage backend.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import httpx

from routeme.config import Settings, settings as default_settings
from routeme.domain.entities import (
    Coordinate,
    Destination,
    JourneyProgress,
    LocationFix,
    RouteSnapshot,
)
from routeme.domain.geometry import (
    bearing_degrees,
    format_distance,
    format_duration,
    nearest_upcoming_point,
    remaining_distance_along_route,
)
from routeme.domain.state import LocationState
from routeme.infrastructure.event_bus import EventBus
from routeme.infrastructure.location import (
    PERMISSION_DENIED_MESSAGE,
    LocationProvider,
    LocationUnavailable,
)
from routeme.infrastructure.maps_client import GoogleMapsClient, MapsApiError
from routeme.infrastructure.repositories import HistoryQuery, SearchHistoryRepository
from routeme.infrastructure.schemas import HistoryEntry, PlacePrediction
from routeme.infrastructure.storage import KeyValueStorage, build_storage
from routeme.services.routing import RouteFetcher
from routeme.workers.deviation_monitor import DeviationMonitor

logger = logging.getLogger(__name__)

MAPS_ERRORS = (httpx.HTTPError, MapsApiError, ValueError)


class NavigationShell:
    def __init__(
        self,
        settings: Settings,
        storage: Optional[KeyValueStorage],
        maps: GoogleMapsClient,
    ):
        self.settings = settings
        self.bus = EventBus()
        self.state = LocationState(self.bus)
        self.history = SearchHistoryRepository(
            storage,
            self.bus,
            key=settings.history_storage_key,
            cap=settings.history_cap,
        )
        self.maps = maps
        self.router = RouteFetcher(self.state, maps)
        self.monitor = DeviationMonitor(
            self.state,
            self.router,
            interval_seconds=settings.deviation_check_interval_seconds,
            threshold_km=settings.deviation_threshold_km,
            reroute=settings.reroute_on_deviation,
        )
        self._stop_watch: Optional[Callable[[], None]] = None
        self._pending: set[asyncio.Task] = set()

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator[NavigationShell]:
        await self.monitor.start()
        try:
            yield self
        finally:
            await self.monitor.stop()
            self.stop_tracking()
            pending = list(self._pending)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            await self.maps.aclose()
            await self.history.storage.close()

    # ── Location ──────────────────────────────────────────────────────

    async def start_tracking(self, provider: LocationProvider) -> bool:
        if not await provider.request_permission():
            logger.warning("Location permission denied")
            self.state.set_location_error(PERMISSION_DENIED_MESSAGE)
            return False
        try:
            fix = await provider.current_fix()
        except LocationUnavailable as exc:
            logger.warning("Initial location fix failed: %s", exc)
            self.state.set_location_error(f"Error fetching location: {exc}")
            return False

        self.on_location_update(fix)
        self._stop_watch = provider.watch(self.on_location_update)
        return True

    def stop_tracking(self) -> None:
        if self._stop_watch is not None:
            self._stop_watch()
            self._stop_watch = None

    def on_location_update(self, fix: LocationFix) -> None:
        self.state.set_current_location(fix)
        # A destination picked before the first fix is still waiting for a route.
        if (
            self.state.destination is not None
            and self.state.route is None
            and self.state.is_loading_route
            and not self.router.busy
            and not self._pending
        ):
            task = asyncio.ensure_future(self.request_route())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    # ── Destination selection ─────────────────────────────────────────

    async def request_route(self) -> Optional[RouteSnapshot]:
        fix = self.state.current_location
        destination = self.state.destination
        if fix is None or destination is None:
            return None
        return await self.router.fetch(fix.as_coordinate(), destination)

    async def select_destination(
        self, destination: Destination, *, remember: bool = True
    ) -> Optional[RouteSnapshot]:
        self.state.set_destination(destination)
        if remember:
            saved = await self.history.save(
                HistoryEntry(
                    place_id=destination.place_id,
                    name=destination.name,
                    address=destination.address,
                    latitude=destination.latitude,
                    longitude=destination.longitude,
                )
            )
            self._sync_favorite(saved)
        if self.state.current_location is None:
            logger.info("No location fix yet; route will be requested on the first fix")
            return None
        return await self.request_route()

    async def select_history_entry(self, entry: HistoryEntry) -> Optional[RouteSnapshot]:
        """Re-select a stored place; the entry itself is re-saved so its flag is kept."""
        destination = Destination(
            latitude=entry.latitude,
            longitude=entry.longitude,
            name=entry.name,
            address=entry.address,
            place_id=entry.place_id,
            favorite=entry.favorite,
        )
        self.state.set_destination(destination)
        self._sync_favorite(await self.history.save(entry))
        return await self.request_route()

    async def select_prediction(
        self, prediction: PlacePrediction
    ) -> Optional[RouteSnapshot]:
        destination = await self.place_details(prediction.place_id)
        if destination is None:
            return None
        return await self.select_destination(destination)

    async def name_dropped_pin(
        self, point: Coordinate, name: str
    ) -> Optional[RouteSnapshot]:
        address = await self.reverse_geocode(point)
        return await self.select_destination(
            Destination(
                latitude=point.latitude,
                longitude=point.longitude,
                name=name,
                address=address,
            )
        )

    async def toggle_destination_favorite(self) -> Optional[bool]:
        destination = self.state.destination
        if destination is None:
            return None
        query = self._history_query(destination)
        favorite = not destination.favorite
        if await self.history.toggle_favorite(query):
            stored = await self._stored_entry(query)
            if stored is not None:
                favorite = stored.favorite
        else:
            saved = await self.history.save(
                HistoryEntry(
                    place_id=destination.place_id,
                    name=destination.name,
                    address=destination.address,
                    latitude=destination.latitude,
                    longitude=destination.longitude,
                    favorite=favorite,
                )
            )
            if saved is not None:
                favorite = saved.favorite
        self.state.merge_destination_meta(favorite=favorite)
        return favorite

    @staticmethod
    def _history_query(destination: Destination) -> HistoryQuery:
        if destination.place_id:
            return HistoryQuery(place_id=destination.place_id)
        return HistoryQuery(
            latitude=destination.latitude, longitude=destination.longitude
        )

    async def _stored_entry(self, query: HistoryQuery) -> Optional[HistoryEntry]:
        for entry in await self.history.load():
            if query.matches(entry):
                return entry
        return None

    def _sync_favorite(self, saved: Optional[HistoryEntry]) -> None:
        """Carry the stored favorite flag onto the selected destination."""
        current = self.state.destination
        if (
            saved is not None
            and current is not None
            and current.favorite != saved.favorite
        ):
            self.state.merge_destination_meta(favorite=saved.favorite)

    def clear_destination(self) -> None:
        self.state.clear_destination()

    # ── Journey ───────────────────────────────────────────────────────

    def start_journey(self) -> None:
        self.state.start_journey()

    def stop_journey(self) -> None:
        self.state.stop_journey()

    def progress(self) -> Optional[JourneyProgress]:
        fix = self.state.current_location
        info = self.state.route_info
        route = self.state.route_coordinates
        remaining = remaining_distance_along_route(fix, route)
        if remaining is None or info is None:
            return None

        eta = info.duration_min * remaining / info.distance_km if info.distance_km else 0.0
        return JourneyProgress(
            remaining_km=remaining,
            remaining_text=format_distance(remaining),
            eta_min=eta,
            eta_text=format_duration(eta),
            bearing_deg=bearing_degrees(fix, nearest_upcoming_point(fix, route)),
        )

    # ── Places (soft failures) ────────────────────────────────────────

    async def search_places(self, text: str) -> list[PlacePrediction]:
        try:
            return await self.maps.autocomplete(text)
        except MAPS_ERRORS as exc:
            logger.warning("Place autocomplete failed: %s", exc)
            return []

    async def place_details(self, place_id: str) -> Optional[Destination]:
        try:
            return await self.maps.place_details(place_id)
        except MAPS_ERRORS as exc:
            logger.warning("Place details for %s failed: %s", place_id, exc)
            return None

    async def reverse_geocode(self, point: Coordinate) -> str:
        try:
            return await self.maps.reverse_geocode(point)
        except MAPS_ERRORS as exc:
            logger.warning("Reverse geocoding failed: %s", exc)
            return ""


def create_shell(
    settings: Settings = default_settings,
    *,
    storage: Optional[KeyValueStorage] = None,
    maps: Optional[GoogleMapsClient] = None,
) -> NavigationShell:
    """Build a shell from settings; explicit collaborators win over configured ones."""
    return NavigationShell(
        settings,
        storage if storage is not None else build_storage(settings),
        maps or GoogleMapsClient.from_settings(settings),
    )
