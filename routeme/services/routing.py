"""
Routing fetch
=============

Turns an (origin, destination) pair into a ``RouteSnapshot`` on the state
container.

Deduplication
-------------
Requests are keyed by ``"lat,lng->lat,lng"``.  A second caller for a key
that is in flight awaits the same task; a key that already completed is
served from the cache (and re-applied) without another request.  Failed
keys are forgotten so a later call can retry.

Failure policy
--------------
Network, status and parse errors are logged and swallowed: the existing
route is left untouched and only the loading flag is cleared.  There is no
retry and no cancellation of a request once issued.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import OrderedDict
from typing import Optional, Protocol

import httpx

from routeme.domain.entities import (
    Coordinate,
    RouteInfo,
    RouteSnapshot,
    RouteStep,
)
from routeme.domain.geometry import decode_polyline
from routeme.domain.state import LocationState
from routeme.infrastructure.maps_client import MapsApiError, format_latlng
from routeme.infrastructure.schemas import DirectionsResponse

logger = logging.getLogger(__name__)

MAX_CACHED_ROUTES = 20
# ValueError also covers pydantic validation and bad polylines; lookup errors
# come from providers that hand back unvalidated payloads.
FETCH_ERRORS = (httpx.HTTPError, MapsApiError, ValueError, KeyError, IndexError)
_HTML_TAG = re.compile(r"<[^>]*>")


class DirectionsProvider(Protocol):
    async def directions(
        self, origin: Coordinate, destination: Coordinate
    ) -> DirectionsResponse: ...


def strip_html(text: str) -> str:
    return _HTML_TAG.sub("", text)


def request_key(origin: Coordinate, destination: Coordinate) -> str:
    return f"{format_latlng(origin)}->{format_latlng(destination)}"


def route_from_response(response: DirectionsResponse) -> RouteSnapshot:
    """First leg of the first route: metres -> km, seconds -> minutes."""
    route = response.routes[0]
    leg = route.legs[0]
    info = RouteInfo(
        distance_km=leg.distance.value / 1000,
        duration_min=leg.duration.value / 60,
        steps=tuple(
            RouteStep(
                instruction=strip_html(step.html_instructions),
                distance_text=step.distance.text,
                duration_text=step.duration.text,
            )
            for step in leg.steps
        ),
    )
    coordinates = decode_polyline(route.overview_polyline.points)
    return RouteSnapshot(info=info, coordinates=tuple(coordinates))


class RouteFetcher:
    def __init__(self, state: LocationState, client: DirectionsProvider):
        self.state = state
        self.client = client
        self._in_flight: dict[str, asyncio.Task] = {}
        self._completed: OrderedDict[str, RouteSnapshot] = OrderedDict()

    @property
    def busy(self) -> bool:
        return bool(self._in_flight)

    async def fetch(
        self, origin: Coordinate, destination: Coordinate
    ) -> Optional[RouteSnapshot]:
        key = request_key(origin, destination)

        cached = self._completed.get(key)
        if cached is not None:
            logger.debug("Route %s served from cache", key)
            self._apply(destination, cached)
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, origin, destination))
            self._in_flight[key] = task
            task.add_done_callback(lambda _t: self._in_flight.pop(key, None))
        else:
            logger.debug("Route %s already in flight", key)
        return await asyncio.shield(task)

    async def _fetch(
        self, key: str, origin: Coordinate, destination: Coordinate
    ) -> Optional[RouteSnapshot]:
        try:
            response = await self.client.directions(origin, destination)
            snapshot = route_from_response(response)
        except FETCH_ERRORS as exc:
            logger.warning("Directions request %s failed: %s", key, exc)
            if self._is_current(destination) or self.state.destination is None:
                self.state.set_route_loading(False)
            return None

        self._completed[key] = snapshot
        while len(self._completed) > MAX_CACHED_ROUTES:
            self._completed.popitem(last=False)
        self._apply(destination, snapshot)
        return snapshot

    def _is_current(self, destination: Coordinate) -> bool:
        return destination.same_point(self.state.destination)

    def _apply(self, destination: Coordinate, snapshot: RouteSnapshot) -> None:
        if not self._is_current(destination):
            logger.info("Discarding route for a destination that is no longer active")
            return
        self.state.set_route(snapshot.info, list(snapshot.coordinates))
        self.state.set_route_loading(False)
