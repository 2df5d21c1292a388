from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Generic, Iterable, Optional, TypeVar

import aiosqlite

from .cache import RecordCache

T = TypeVar("T")
log = logging.getLogger("warden.base_service")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def dump_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def load_json(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        log.warning("Discarding unreadable JSON column: %r", raw[:80])
        return default


class BaseService(ABC, Generic[T]):
    """Base class for all SQLite-backed services with caching."""

    def __init__(self, sqlite_path: str, cache_ttl_seconds: int = 120) -> None:
        self._path = sqlite_path
        self._cache: RecordCache[T] = RecordCache(ttl_seconds=cache_ttl_seconds)
        self._logger = logging.getLogger(f"warden.{self.__class__.__name__.lower()}")

    async def init(self) -> None:
        """Initialize the database schema."""
        async with aiosqlite.connect(self._path) as db:
            await self._create_tables(db)
            await db.commit()

    @abstractmethod
    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        """Create the necessary database tables."""

    @abstractmethod
    def _from_row(self, row: aiosqlite.Row) -> T:
        """Convert a database row to the service's data type."""

    @property
    @abstractmethod
    def _get_query(self) -> str:
        """SQL query for getting data by key."""

    async def get(self, *key: int) -> Optional[T]:
        """Get cached data or fetch from database."""
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        data = await self._fetch_one(self._get_query, key)
        if data is not None:
            self._cache.put(key, data)
        return data

    def invalidate(self, *key: int) -> None:
        self._cache.discard(key)

    async def _fetch_one(self, query: str, params: Iterable[Any]) -> Optional[T]:
        async with aiosqlite.connect(self._path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, tuple(params)) as cur:
                row = await cur.fetchone()
        return None if row is None else self._from_row(row)

    async def _fetch_all(self, query: str, params: Iterable[Any]) -> list[T]:
        async with aiosqlite.connect(self._path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, tuple(params)) as cur:
                rows = await cur.fetchall()
        return [self._from_row(r) for r in rows]

    async def _execute(self, query: str, params: Iterable[Any]) -> int:
        """Run a single write and return the affected row count."""
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(query, tuple(params))
            await db.commit()
            return cur.rowcount
