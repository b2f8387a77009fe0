"""TTL cache for registry metadata and computed rankings.

A ``CacheService`` owns the expiry policy and the clock; the storage backend
only persists entries. Two backends exist: an in-process dict and a SQLite
file so rankings survive between runs.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    """A single cache entry with TTL."""

    value: Any
    expires_at: Optional[float]
    created_at: float

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired at ``now``."""
        return self.expires_at is not None and now > self.expires_at


class MemoryStore:
    """Dict-backed store; bounded, evicting the oldest entries when full."""

    def __init__(self, max_entries: int = Constants.CACHE_MAX_ENTRIES):
        self._entries: Dict[str, CacheEntry] = {}
        self._max_entries = max_entries
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry
            if len(self._entries) > self._max_entries:
                self._evict_oldest(max(1, self._max_entries // 10))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_expired(self, now: float) -> int:
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def _evict_oldest(self, count: int) -> None:
        sorted_keys = sorted(self._entries, key=lambda k: self._entries[k].created_at)
        for key in sorted_keys[:count]:
            del self._entries[key]


class SqliteStore:
    """SQLite-backed store; values are serialized as JSON."""

    _SCHEMA = (
        "CREATE TABLE IF NOT EXISTS package_cache ("
        " name TEXT PRIMARY KEY,"
        " data TEXT NOT NULL,"
        " cached_at REAL NOT NULL,"
        " expires_at REAL"
        ")"
    )

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        with self._lock, self._conn:
            self._conn.execute(self._SCHEMA)
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_package_cache_expires ON package_cache(expires_at)"
            )

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            row = self._conn.execute(
                "SELECT data, cached_at, expires_at FROM package_cache WHERE name = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        try:
            value = json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry for %s", key)
            self.delete(key)
            return None
        return CacheEntry(value=value, created_at=row[1], expires_at=row[2])

    def put(self, key: str, entry: CacheEntry) -> None:
        data = json.dumps(entry.value)
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO package_cache (name, data, cached_at, expires_at)"
                " VALUES (?, ?, ?, ?)",
                (key, data, entry.created_at, entry.expires_at),
            )

    def delete(self, key: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM package_cache WHERE name = ?", (key,))

    def delete_expired(self, now: float) -> int:
        with self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM package_cache WHERE expires_at IS NOT NULL AND expires_at < ?",
                (now,),
            )
            return cur.rowcount

    def clear(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM package_cache")

    def keys(self) -> List[str]:
        with self._lock:
            return [r[0] for r in self._conn.execute("SELECT name FROM package_cache")]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class CacheService:
    """Read-through TTL cache shared by the registry client and ranking service.

    Per-key operations only; concurrent misses for the same key may both
    fetch and the last write wins.
    """

    def __init__(
        self,
        store=None,
        *,
        clock: Clock = time.time,
        cleanup_interval: float = Constants.CACHE_CLEANUP_INTERVAL_SEC,
    ):
        """Initialize the cache service.

        Args:
            store: Storage backend; defaults to an in-memory store.
            clock: Callable returning the current time in seconds.
            cleanup_interval: Minimum seconds between expired-entry sweeps.
        """
        self._store = store if store is not None else MemoryStore()
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None if missing or expired."""
        self._maybe_cleanup()
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._store.delete(key)
            if is_debug_enabled(logger):
                logger.debug(
                    "Cache entry expired",
                    extra=extra_context(event="cache_expired", component="cache", key=key)
                )
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value`` under ``key``; ``ttl`` of None means no expiry."""
        now = self._clock()
        expires_at = now + ttl if ttl is not None else None
        self._store.put(key, CacheEntry(value=value, expires_at=expires_at, created_at=now))

    def get_or_fetch(self, key: str, fetch: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        """Read-through helper: return the cached value or fetch and store it.

        ``None`` results from ``fetch`` are not cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = fetch()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> None:
        """Remove a single entry."""
        self._store.delete(key)

    def clean_expired(self) -> int:
        """Drop every expired entry; returns the number removed."""
        removed = self._store.delete_expired(self._clock())
        self._last_cleanup = self._clock()
        return removed

    def clear(self) -> None:
        """Clear all cached entries."""
        self._store.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {"total_entries": len(self._store.keys())}

    def _maybe_cleanup(self) -> None:
        """Run cleanup if enough time has passed."""
        if self._clock() - self._last_cleanup > self._cleanup_interval:
            self.clean_expired()
