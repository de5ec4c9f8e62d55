"""
Key/value persistence backends.

The history store only ever reads and writes whole string blobs, so every
backend implements the same three calls.  Driver errors are wrapped in
``StorageUnavailable`` so that callers can degrade without knowing which
backend is configured.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from routeme.config import Settings
from routeme.domain.enums import StorageBackend

from .database import Base, create_engine, create_session_factory
from .models import StoredValueModel
from .redis_client import create_redis

logger = logging.getLogger(__name__)


class StorageUnavailable(Exception):
    """The configured backend could not complete a read or write."""


class KeyValueStorage(ABC):
    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def remove_item(self, key: str) -> None: ...

    async def close(self) -> None:
        return None


class InMemoryStorage(KeyValueStorage):
    """Process-local fallback; contents are lost on restart."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class SqlStorage(KeyValueStorage):
    """Stores each key as a row of ``stored_values``; tables are created on first use."""

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url)
        self.session_factory = create_session_factory(self.engine)
        self._ready = False

    async def _ensure_schema(self) -> None:
        if not self._ready:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._ready = True

    async def get_item(self, key: str) -> Optional[str]:
        try:
            await self._ensure_schema()
            async with self.session_factory() as session:
                row = await session.get(StoredValueModel, key)
                return row.value if row else None
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def set_item(self, key: str, value: str) -> None:
        try:
            await self._ensure_schema()
            async with self.session_factory() as session:
                row = await session.get(StoredValueModel, key)
                if row is None:
                    session.add(StoredValueModel(key=key, value=value))
                else:
                    row.value = value
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def remove_item(self, key: str) -> None:
        try:
            await self._ensure_schema()
            async with self.session_factory() as session:
                row = await session.get(StoredValueModel, key)
                if row is not None:
                    await session.delete(row)
                    await session.commit()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def close(self) -> None:
        await self.engine.dispose()


class RedisStorage(KeyValueStorage):
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def get_item(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except RedisError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def set_item(self, key: str, value: str) -> None:
        try:
            await self.redis.set(key, value)
        except RedisError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def remove_item(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except RedisError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def close(self) -> None:
        await self.redis.aclose(close_connection_pool=True)


def build_storage(settings: Settings) -> Optional[KeyValueStorage]:
    """Backend selected by ``settings.storage_backend``; ``None`` means in-memory fallback."""
    if settings.storage_backend == StorageBackend.SQL:
        return SqlStorage(settings.database_url)
    if settings.storage_backend == StorageBackend.REDIS:
        return RedisStorage(create_redis(settings.redis_url))
    return None
