"""
In-process publish / subscribe channel.

Each ``EventBus`` owns its own listener registry; the navigation shell scopes
one bus to the lifetime of its state container.  Emission is synchronous and
a failing subscriber never stops the others or the emitter.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, Optional

from routeme.domain.enums import EventName

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class Subscription:
    """Handle returned by ``EventBus.subscribe``; call ``unsubscribe`` on teardown."""

    def __init__(self, bus: EventBus, event: EventName, listener: Listener):
        self._bus = bus
        self.event = event
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._bus.unsubscribe(self.event, self.listener)
            self.active = False


class EventBus:
    def __init__(self) -> None:
        self._listeners: dict[EventName, list[Listener]] = defaultdict(list)

    def subscribe(self, event: EventName, listener: Listener) -> Subscription:
        self._listeners[event].append(listener)
        return Subscription(self, event, listener)

    def unsubscribe(self, event: EventName, listener: Listener) -> None:
        # Equality, not identity: each ``obj.method`` access is a new bound method.
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: EventName) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: EventName, payload: Optional[Any] = None) -> None:
        # Copy: a listener may unsubscribe itself while we iterate.
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception:
                logger.exception("Subscriber for %s failed", event.value)
