"""Tests for the TTL cache service and its stores."""

from cache import CacheEntry, CacheService, MemoryStore, SqliteStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestCacheService:
    """Expiry and read-through behaviour."""

    def test_value_expires_after_ttl(self):
        clock = FakeClock()
        cache = CacheService(clock=clock)

        cache.set("rank:react", {"rank": 3}, ttl=60)
        assert cache.get("rank:react") == {"rank": 3}

        clock.advance(61)
        assert cache.get("rank:react") is None

    def test_no_ttl_never_expires(self):
        clock = FakeClock()
        cache = CacheService(clock=clock)

        cache.set("k", "v")
        clock.advance(10 ** 9)

        assert cache.get("k") == "v"

    def test_get_or_fetch_reads_through_once(self):
        cache = CacheService(clock=FakeClock())
        calls = []

        def fetch():
            calls.append(1)
            return ["1.0.0"]

        assert cache.get_or_fetch("meta:x", fetch, ttl=30) == ["1.0.0"]
        assert cache.get_or_fetch("meta:x", fetch, ttl=30) == ["1.0.0"]
        assert len(calls) == 1

    def test_get_or_fetch_does_not_cache_none(self):
        cache = CacheService(clock=FakeClock())

        assert cache.get_or_fetch("k", lambda: None) is None
        assert cache.get_or_fetch("k", lambda: "later") == "later"

    def test_clean_expired_counts_removed(self):
        clock = FakeClock()
        cache = CacheService(clock=clock)
        cache.set("a", 1, ttl=5)
        cache.set("b", 2, ttl=500)

        clock.advance(10)

        assert cache.clean_expired() == 1
        assert cache.stats() == {"total_entries": 1}

    def test_periodic_cleanup_runs_on_get(self):
        clock = FakeClock()
        store = MemoryStore()
        cache = CacheService(store, clock=clock, cleanup_interval=100)
        cache.set("old", 1, ttl=1)

        clock.advance(200)
        cache.get("unrelated")

        assert store.keys() == []


class TestMemoryStore:
    """Bounded in-process storage."""

    def test_evicts_oldest_when_full(self):
        store = MemoryStore(max_entries=10)
        for i in range(11):
            store.put(f"k{i}", CacheEntry(value=i, expires_at=None, created_at=float(i)))

        keys = store.keys()
        assert "k0" not in keys
        assert "k10" in keys
        assert len(keys) == 10


class TestSqliteStore:
    """File-backed storage survives a reopen."""

    def test_entries_persist_across_instances(self, tmp_path):
        path = str(tmp_path / "cache.db")
        first = CacheService(SqliteStore(path), clock=FakeClock())
        first.set("rank:vue", {"rank": 2, "reasoning": "framework"}, ttl=3600)

        second = CacheService(SqliteStore(path), clock=FakeClock())

        assert second.get("rank:vue") == {"rank": 2, "reasoning": "framework"}

    def test_delete_expired(self, tmp_path):
        store = SqliteStore(str(tmp_path / "cache.db"))
        store.put("gone", CacheEntry(value=1, expires_at=5.0, created_at=0.0))
        store.put("kept", CacheEntry(value=2, expires_at=None, created_at=0.0))

        assert store.delete_expired(10.0) == 1
        assert store.keys() == ["kept"]
        store.close()
