"""
Search-history repository.

The whole history is one JSON array (most recent first) stored under a single
key of a ``KeyValueStorage``.  Every mutation is read-modify-write of that
array followed by a ``history-changed`` notification.

Uniqueness key: ``place_id`` when both sides carry one, otherwise exact
latitude/longitude equality.  Favorites are never evicted, so the list may
grow past ``cap`` when everything in it is favorited.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from pydantic import ValidationError

from routeme.domain.entities import now_ms
from routeme.domain.enums import EventName

from .event_bus import EventBus
from .schemas import HistoryEntry, HistoryList
from .storage import InMemoryStorage, KeyValueStorage, StorageUnavailable

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "routeme_search_history_v1"
DEFAULT_CAP = 50


@dataclass(frozen=True)
class HistoryQuery:
    """Field-equality matcher: any one populated criterion matching is enough."""

    timestamp: Optional[int] = None
    place_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def matches(self, entry: HistoryEntry) -> bool:
        if self.timestamp and entry.timestamp == self.timestamp:
            return True
        if self.place_id and entry.place_id and entry.place_id == self.place_id:
            return True
        return (
            self.latitude is not None
            and self.longitude is not None
            and entry.latitude == self.latitude
            and entry.longitude == self.longitude
        )


Matcher = Union[Callable[[HistoryEntry], bool], HistoryQuery]


def _as_predicate(matcher: Matcher) -> Callable[[HistoryEntry], bool]:
    if isinstance(matcher, HistoryQuery):
        return matcher.matches
    return matcher


def same_place(a: HistoryEntry, b: HistoryEntry) -> bool:
    if a.place_id and b.place_id:
        return a.place_id == b.place_id
    return a.latitude == b.latitude and a.longitude == b.longitude


class SearchHistoryRepository:
    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        bus: Optional[EventBus] = None,
        *,
        key: str = DEFAULT_STORAGE_KEY,
        cap: int = DEFAULT_CAP,
    ):
        self.using_fallback = storage is None
        self.storage = storage if storage is not None else InMemoryStorage()
        self.bus = bus or EventBus()
        self.key = key
        self.cap = cap
        self._fallback_warned = False

    # ── Internals ─────────────────────────────────────────────────────

    def _warn_fallback_once(self) -> None:
        if self.using_fallback and not self._fallback_warned:
            logger.warning(
                "No persistent storage configured; search history is kept in memory only"
            )
            self._fallback_warned = True

    async def _read(self) -> list[HistoryEntry]:
        """Raises ``StorageUnavailable``; a corrupt blob reads as empty."""
        self._warn_fallback_once()
        raw = await self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            return HistoryList.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable search history: %s", exc)
            return []

    async def _write(self, entries: list[HistoryEntry]) -> None:
        await self.storage.set_item(
            self.key,
            HistoryList.dump_json(entries, by_alias=True, exclude_none=True).decode(),
        )

    def _evict(self, entries: list[HistoryEntry]) -> None:
        """Drop non-favorites from the tail (oldest) until within cap."""
        i = len(entries) - 1
        while len(entries) > self.cap and i >= 0:
            if not entries[i].favorite:
                del entries[i]
            i -= 1

    # ── Public API ────────────────────────────────────────────────────

    async def load(self) -> list[HistoryEntry]:
        try:
            return await self._read()
        except StorageUnavailable as exc:
            logger.warning("Loading search history failed: %s", exc)
            return []

    async def save(self, entry: HistoryEntry) -> Optional[HistoryEntry]:
        """
        Upsert *entry* at the front of the list with a fresh timestamp.

        Fields the caller set explicitly override the stored ones; an
        omitted ``favorite`` keeps the existing flag.
        """
        try:
            entries = await self._read()
            existing = next((e for e in entries if same_place(e, entry)), None)
            remaining = [e for e in entries if not same_place(e, entry)]

            data = (existing or entry).model_dump()
            data.update(entry.model_dump(include=entry.model_fields_set))
            if "favorite" not in entry.model_fields_set:
                data["favorite"] = existing.favorite if existing else False
            data["timestamp"] = now_ms()
            saved = HistoryEntry(**data)

            remaining.insert(0, saved)
            self._evict(remaining)
            await self._write(remaining)
        except StorageUnavailable as exc:
            logger.warning("Saving search entry failed: %s", exc)
            return None

        self.bus.emit(EventName.HISTORY_CHANGED)
        return saved

    async def remove(self, matcher: Matcher) -> int:
        predicate = _as_predicate(matcher)
        try:
            entries = await self._read()
            kept = [e for e in entries if not predicate(e)]
            await self._write(kept)
        except StorageUnavailable as exc:
            logger.warning("Removing search entry failed: %s", exc)
            return 0

        self.bus.emit(EventName.HISTORY_CHANGED)
        return len(entries) - len(kept)

    async def clear(self) -> None:
        try:
            self._warn_fallback_once()
            await self.storage.remove_item(self.key)
        except StorageUnavailable as exc:
            logger.warning("Clearing search history failed: %s", exc)
            return

        self.bus.emit(EventName.HISTORY_CHANGED)

    async def toggle_favorite(self, matcher: Matcher) -> int:
        """Flip ``favorite`` on every matching entry; returns how many changed."""
        predicate = _as_predicate(matcher)
        try:
            entries = await self._read()
            toggled = 0
            for i, entry in enumerate(entries):
                if predicate(entry):
                    entries[i] = entry.model_copy(update={"favorite": not entry.favorite})
                    toggled += 1
            if toggled:
                await self._write(entries)
        except StorageUnavailable as exc:
            logger.warning("Toggling favorite failed: %s", exc)
            return 0

        if toggled:
            self.bus.emit(EventName.HISTORY_CHANGED)
        return toggled

    async def list_favorites(self) -> list[HistoryEntry]:
        return [e for e in await self.load() if e.favorite]

    def notify_changed(self) -> None:
        self.bus.emit(EventName.HISTORY_CHANGED)
