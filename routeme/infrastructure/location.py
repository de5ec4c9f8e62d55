"""Device location provider abstraction (the platform GPS API lives behind it)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from routeme.domain.entities import LocationFix

PERMISSION_DENIED_MESSAGE = (
    "Location permission denied. Please enable location access in settings."
)


class LocationUnavailable(Exception):
    """The provider could not produce a fix."""


class LocationProvider(ABC):
    @abstractmethod
    async def request_permission(self) -> bool: ...

    @abstractmethod
    async def current_fix(self) -> LocationFix:
        """Raises ``LocationUnavailable`` when no fix can be obtained."""

    @abstractmethod
    def watch(self, callback: Callable[[LocationFix], None]) -> Callable[[], None]:
        """Deliver every new fix to *callback*; returns a function that stops the watch."""
