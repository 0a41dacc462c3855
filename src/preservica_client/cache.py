"""TTL caches for credentials and access tokens.

``TokenCache`` holds the expiry and single-flight logic; the entries live in a
``CacheStoreProtocol`` backend. Two backends are provided: an in-memory dict
and a SQLite table for tokens that should survive a process restart.

The SQLite store catches ``aiosqlite.Error`` internally and degrades
gracefully: read failures return ``None`` (treated as a miss, so the token is
simply refreshed), write failures are logged and ignored.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from preservica_client.models.cache import CacheEntry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from preservica_client.protocols import CacheStoreProtocol

log = structlog.get_logger()

_CREATE_CACHE_TABLE = """
CREATE TABLE IF NOT EXISTS token_cache (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    ttl_seconds REAL NOT NULL
)
"""


def _utc_now() -> datetime:
    return datetime.now(UTC)


class MemoryCacheStore:
    """In-process store implementing CacheStoreProtocol."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    async def get_entry(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    async def put_entry(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    async def remove_all(self, prefix: str = "") -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]


class SqliteCacheStore:
    """SQLite-backed store implementing CacheStoreProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create the table, set WAL mode and drop rows left over from expired entries."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_CACHE_TABLE)
        await self._db.commit()
        await self.cleanup_expired()

    async def cleanup_expired(self, now: datetime | None = None) -> None:
        """Delete every entry whose TTL has passed. Non-fatal on failure."""
        now = now or _utc_now()
        try:
            cursor = await self._db.execute(
                "SELECT key, value, created_at, ttl_seconds FROM token_cache"
            )
            rows = await cursor.fetchall()
            expired = [
                (key,)
                for key, value, created_at, ttl_seconds in rows
                if CacheEntry(
                    value=value,
                    created_at=datetime.fromisoformat(created_at),
                    ttl_seconds=ttl_seconds,
                ).is_expired(now)
            ]
            await self._db.executemany("DELETE FROM token_cache WHERE key = ?", expired)
            await self._db.commit()
            log.debug("cache_cleanup_complete", deleted=len(expired))
        except aiosqlite.Error:
            log.warning("cache_cleanup_error", exc_info=True)

    async def get_entry(self, key: str) -> CacheEntry | None:
        """Read an entry. Returns ``None`` on miss or read failure."""
        try:
            cursor = await self._db.execute(
                "SELECT value, created_at, ttl_seconds FROM token_cache WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return CacheEntry(
                value=row[0],
                created_at=datetime.fromisoformat(row[1]),
                ttl_seconds=row[2],
            )
        except aiosqlite.Error:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None

    async def put_entry(self, key: str, entry: CacheEntry) -> None:
        """Write an entry. Non-fatal on failure."""
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO token_cache (key, value, created_at, ttl_seconds) "
                "VALUES (?, ?, ?, ?)",
                (key, entry.value, entry.created_at.isoformat(), entry.ttl_seconds),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", key=key, exc_info=True)

    async def remove(self, key: str) -> None:
        try:
            await self._db.execute("DELETE FROM token_cache WHERE key = ?", (key,))
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_delete_error", key=key, exc_info=True)

    async def remove_all(self, prefix: str = "") -> None:
        try:
            await self._db.execute(
                "DELETE FROM token_cache WHERE substr(key, 1, ?) = ?",
                (len(prefix), prefix),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_delete_error", prefix=prefix, exc_info=True)


class TokenCache:
    """TTL cache over a store, with at most one in-flight refresh per key.

    Keys are prefixed with ``namespace`` so that several caches can share one
    store without seeing each other's entries. An expired entry is reported as
    absent and deleted from the store when it is read.
    """

    def __init__(
        self,
        store: CacheStoreProtocol,
        *,
        namespace: str,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._prefix = f"{namespace}:"
        self._clock = clock
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return self._prefix + key

    async def get(self, key: str) -> str | None:
        entry = await self._store.get_entry(self._key(key))
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            await self._store.remove(self._key(key))
            return None
        return entry.value

    async def put(self, key: str, value: str, ttl: timedelta) -> None:
        entry = CacheEntry(
            value=value,
            created_at=self._clock(),
            ttl_seconds=ttl.total_seconds(),
        )
        await self._store.put_entry(self._key(key), entry)

    async def remove(self, key: str) -> None:
        await self._store.remove(self._key(key))

    async def remove_all(self) -> None:
        await self._store.remove_all(self._prefix)

    async def get_or_compute(
        self,
        key: str,
        ttl: timedelta,
        compute: Callable[[], Awaitable[str]],
    ) -> str:
        """Return the cached value, running ``compute`` once on a miss.

        Concurrent callers that miss on the same key wait for the first
        caller's computation and then read its result from the cache.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        async with self._locks[key]:
            cached = await self.get(key)
            if cached is not None:
                return cached
            log.debug("cache_refresh", namespace=self.namespace, key=key)
            value = await compute()
            await self.put(key, value, ttl)
            return value
