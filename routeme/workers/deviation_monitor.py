"""
Background Deviation Monitor
============================

Runs every ``deviation_check_interval_seconds`` (default 10 s) while the
shell is alive.  A check only does work when a destination, a route and a
location fix are all present.

Per check
---------
1. Find the distance from the current fix to the nearest route point.
2. If it exceeds ``deviation_threshold_km`` (default 50 m) the user has left
   the route.
3. With ``reroute`` enabled, request a fresh route from the current fix to
   the active destination.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from routeme.domain.geometry import has_deviated_from_route
from routeme.domain.state import LocationState
from routeme.services.routing import RouteFetcher

logger = logging.getLogger(__name__)


class DeviationMonitor:
    def __init__(
        self,
        state: LocationState,
        fetcher: Optional[RouteFetcher] = None,
        *,
        interval_seconds: float = 10,
        threshold_km: float = 0.05,
        reroute: bool = True,
    ):
        self.state = state
        self.fetcher = fetcher
        self.interval_seconds = interval_seconds
        self.threshold_km = threshold_km
        self.reroute = reroute
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Public API ────────────────────────────────────────────────────

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Deviation monitor started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Deviation monitor stopped")

    async def check_once(self) -> bool:
        """Run a single check.  Returns True when a deviation was detected."""
        fix = self.state.current_location
        destination = self.state.destination
        route = self.state.route_coordinates
        if fix is None or destination is None or not route:
            return False

        if not has_deviated_from_route(fix, route, self.threshold_km):
            return False

        logger.info("User deviated from route; recalculating")
        if self.reroute and self.fetcher is not None and not self.state.is_loading_route:
            self.state.set_route_loading(True)
            await self.fetcher.fetch(fix.as_coordinate(), destination)
        return True

    # ── Internals ─────────────────────────────────────────────────────

    async def _loop(self) -> None:
        """Periodic loop: wait for the interval, then check."""
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval_seconds
                )
                break
            except asyncio.TimeoutError:
                pass  # interval elapsed
            try:
                await self.check_once()
            except Exception:
                logger.exception("Unhandled error in deviation check")
