"""Domain enumerations."""

import enum


class EventName(str, enum.Enum):
    HISTORY_CHANGED = "history-changed"
    SELECTION_MADE = "selection-made"


class StorageBackend(str, enum.Enum):
    MEMORY = "memory"
    SQL = "sql"
    REDIS = "redis"
