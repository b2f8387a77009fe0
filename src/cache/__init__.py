"""Read-through TTL cache for registry metadata and package rankings."""

from .ttl_cache import CacheEntry, CacheService, MemoryStore, SqliteStore

__all__ = ["CacheEntry", "CacheService", "MemoryStore", "SqliteStore"]
