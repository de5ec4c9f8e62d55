"""Tests for the periodic route-deviation monitor."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from routeme.domain.entities import Coordinate, Destination, LocationFix, RouteInfo
from routeme.domain.state import LocationState
from routeme.workers.deviation_monitor import DeviationMonitor

DEST = Destination(0.0, 0.02, name="End of road")
ROUTE = [Coordinate(0, 0), Coordinate(0, 0.01), Coordinate(0, 0.02)]


def routed_state(fix: LocationFix | None) -> LocationState:
    state = LocationState()
    state.set_destination(DEST)
    state.set_route(RouteInfo(distance_km=2.2, duration_min=4.0), ROUTE)
    state.set_route_loading(False)
    if fix is not None:
        state.set_current_location(fix)
    return state


class TestCheckOnce:
    @pytest.mark.asyncio
    async def test_no_route_no_check(self):
        state = LocationState()
        state.set_current_location(LocationFix(5.0, 5.0))
        fetcher = AsyncMock()
        assert await DeviationMonitor(state, fetcher).check_once() is False
        fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_fix(self):
        assert await DeviationMonitor(routed_state(None)).check_once() is False

    @pytest.mark.asyncio
    async def test_on_route(self):
        state = routed_state(LocationFix(0.0001, 0.01))
        fetcher = AsyncMock()
        assert await DeviationMonitor(state, fetcher).check_once() is False
        fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_deviation_triggers_reroute(self):
        fix = LocationFix(0.01, 0.01, heading=45.0)
        state = routed_state(fix)
        fetcher = AsyncMock()

        assert await DeviationMonitor(state, fetcher).check_once() is True
        fetcher.fetch.assert_awaited_once_with(Coordinate(0.01, 0.01), DEST)
        assert state.is_loading_route

    @pytest.mark.asyncio
    async def test_reroute_disabled(self):
        state = routed_state(LocationFix(0.01, 0.01))
        fetcher = AsyncMock()
        monitor = DeviationMonitor(state, fetcher, reroute=False)
        assert await monitor.check_once() is True
        fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_reroute_while_loading(self):
        state = routed_state(LocationFix(0.01, 0.01))
        state.set_route_loading(True)
        fetcher = AsyncMock()
        assert await DeviationMonitor(state, fetcher).check_once() is True
        fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_threshold(self):
        state = routed_state(LocationFix(0.01, 0.01))
        monitor = DeviationMonitor(state, AsyncMock(), threshold_km=5.0)
        assert await monitor.check_once() is False


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_loop_runs_checks_until_stopped(self):
        monitor = DeviationMonitor(LocationState(), interval_seconds=0.01)
        monitor.check_once = AsyncMock(return_value=False)

        await monitor.start()
        assert monitor.running
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert not monitor.running
        assert monitor.check_once.await_count >= 1

    @pytest.mark.asyncio
    async def test_errors_do_not_kill_loop(self):
        monitor = DeviationMonitor(LocationState(), interval_seconds=0.01)
        monitor.check_once = AsyncMock(side_effect=RuntimeError("boom"))

        await monitor.start()
        await asyncio.sleep(0.05)
        assert monitor.running
        await monitor.stop()
        assert monitor.check_once.await_count >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await DeviationMonitor(LocationState()).stop()
