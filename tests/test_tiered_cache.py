"""Tests for the two-tier cache."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from citefetch.core.models import MetadataResult
from citefetch.infrastructure.cache.redis_store import RedisCacheStore
from citefetch.infrastructure.cache.tiered import LRUStore, CacheEntry, TieredCache, create_cache_key


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class MemoryStore:
    """In-memory CacheStore used as a stand-in L2."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ttl_ms):
        self.data[key] = value
        self.ttls[key] = ttl_ms

    async def delete(self, key):
        self.data.pop(key, None)

    async def clear(self):
        self.data.clear()

    async def close(self):
        pass


class BrokenStore(MemoryStore):
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ttl_ms):
        raise ConnectionError("redis down")

    async def delete(self, key):
        raise ConnectionError("redis down")

    async def clear(self):
        raise ConnectionError("redis down")


class SlowStore(MemoryStore):
    """L2 whose reads block until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = None
        self.release = None

    async def get(self, key):
        self.entered.set()
        await self.release.wait()
        return self.data.get(key)


class TestLRUStore:
    def test_evicts_least_recently_used(self):
        store = LRUStore(max_items=2)
        store.set("a", CacheEntry(1, 100.0))
        store.set("b", CacheEntry(2, 100.0))
        store.get("a", now=0.0)
        store.set("c", CacheEntry(3, 100.0))

        assert store.get("b", now=0.0) is None
        assert store.get("a", now=0.0).value == 1
        assert store.get("c", now=0.0).value == 3

    def test_expired_entry_is_absent(self):
        store = LRUStore(max_items=2)
        store.set("a", CacheEntry(1, 10.0))

        assert store.get("a", now=10.0) is None
        assert len(store) == 0

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            LRUStore(0)


class TestL1Only:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = TieredCache(l1_max_items=3, l1_ttl_ms=60_000, clock=self.clock)

    def test_miss_then_hit(self):
        assert run_async(self.cache.get("k")) is None
        run_async(self.cache.set("k", {"title": "A"}))
        assert run_async(self.cache.get("k")) == {"title": "A"}

        stats = self.cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.l1_hits == 1
        assert stats.l2_hits == 0
        assert stats.size == 1
        assert stats.hit_rate == 0.5

    def test_default_ttl_expiry(self):
        run_async(self.cache.set("k", "v"))
        self.clock.advance(59)
        assert run_async(self.cache.get("k")) == "v"
        self.clock.advance(1)
        assert run_async(self.cache.get("k")) is None

    def test_explicit_ttl(self):
        run_async(self.cache.set("k", "v", ttl_ms=1_000))
        self.clock.advance(1)
        assert run_async(self.cache.get("k")) is None

    def test_delete_and_clear(self):
        run_async(self.cache.set("a", 1))
        run_async(self.cache.set("b", 2))
        run_async(self.cache.delete("a"))
        assert run_async(self.cache.get("a")) is None
        run_async(self.cache.clear())
        assert run_async(self.cache.get("b")) is None
        assert self.cache.stats().size == 0

    def test_empty_stats(self):
        assert self.cache.stats().hit_rate == 0.0
        assert not self.cache.l2_enabled


class TestTwoTiers:
    def setup_method(self):
        self.clock = FakeClock()
        self.l2 = MemoryStore()
        self.cache = TieredCache(
            l1_max_items=10,
            l1_ttl_ms=60_000,
            l2=self.l2,
            l2_ttl_ms=3_600_000,
            clock=self.clock,
        )

    def test_set_writes_both_tiers(self):
        run_async(self.cache.set("k", {"a": 1}))

        payload = json.loads(self.l2.data["k"])
        assert json.loads(payload["value"]) == {"a": 1}
        assert payload["expires_at"] == pytest.approx(self.clock.now + 3_600)
        assert self.l2.ttls["k"] == 3_600_000

    def test_explicit_ttl_applies_to_l2(self):
        run_async(self.cache.set("k", 1, ttl_ms=5_000))
        assert self.l2.ttls["k"] == 5_000

    def test_l2_hit_repopulates_l1(self):
        run_async(self.cache.set("k", "value"))
        self.clock.advance(120)  # past L1 TTL, within L2 TTL

        assert run_async(self.cache.get("k")) == "value"
        assert run_async(self.cache.get("k")) == "value"

        stats = self.cache.stats()
        assert stats.l2_hits == 1
        assert stats.l1_hits == 1
        assert stats.misses == 0

    def test_repopulated_l1_never_outlives_l2(self):
        self.l2.data["k"] = json.dumps({"value": json.dumps("value"), "expires_at": self.clock.now + 30})
        assert run_async(self.cache.get("k")) == "value"

        self.clock.advance(31)
        assert run_async(self.cache.get("k")) is None

    def test_expired_l2_payload_is_a_miss(self):
        self.l2.data["k"] = json.dumps({"value": json.dumps("old"), "expires_at": self.clock.now - 1})
        assert run_async(self.cache.get("k")) is None
        assert self.cache.stats().misses == 1

    def test_corrupt_l2_payload_is_a_miss(self):
        self.l2.data["k"] = "not json"
        assert run_async(self.cache.get("k")) is None

    def test_delete_removes_both_tiers(self):
        run_async(self.cache.set("k", 1))
        run_async(self.cache.delete("k"))
        assert "k" not in self.l2.data
        assert run_async(self.cache.get("k")) is None

    def test_each_get_counts_once(self):
        run_async(self.cache.set("a", 1))
        run_async(self.cache.get("a"))
        run_async(self.cache.get("missing"))
        self.clock.advance(61)
        run_async(self.cache.get("a"))

        stats = self.cache.stats()
        assert stats.l1_hits + stats.l2_hits + stats.misses == 3

    def test_custom_codec(self):
        cache = TieredCache(
            l2=self.l2,
            encode=lambda r: r.model_dump_json(),
            decode=MetadataResult.model_validate_json,
            clock=self.clock,
        )
        result = MetadataResult(url="https://example.com/", title="Example", access_date="2024-01-01T00:00:00.000Z")
        run_async(cache.set("r", result))

        fresh = TieredCache(
            l2=self.l2,
            encode=lambda r: r.model_dump_json(),
            decode=MetadataResult.model_validate_json,
            clock=self.clock,
        )
        assert run_async(fresh.get("r")) == result


class TestConcurrentWrites:
    def setup_method(self):
        self.clock = FakeClock()
        self.l2 = SlowStore()
        self.l2.data["k"] = json.dumps({"value": json.dumps("old"), "expires_at": self.clock.now + 3_600})
        self.cache = TieredCache(l2=self.l2, clock=self.clock)

    def _read_during(self, write):
        async def scenario():
            self.l2.entered = asyncio.Event()
            self.l2.release = asyncio.Event()
            reader = asyncio.ensure_future(self.cache.get("k"))
            await self.l2.entered.wait()
            await write()
            self.l2.release.set()
            return await reader

        return run_async(scenario())

    def test_set_during_l2_read_wins(self):
        assert self._read_during(lambda: self.cache.set("k", "new")) == "new"

        assert run_async(self.cache.get("k")) == "new"
        assert self.cache.stats().misses == 0

    def test_unrelated_write_does_not_repopulate(self):
        assert self._read_during(lambda: self.cache.set("other", 1)) == "old"
        assert self.cache.stats().size == 1


class TestL2Failures:
    def setup_method(self):
        self.cache = TieredCache(l2=BrokenStore(), clock=FakeClock())

    def test_operations_survive_l2_errors(self):
        run_async(self.cache.set("k", 1))
        assert run_async(self.cache.get("k")) == 1
        assert run_async(self.cache.get("other")) is None
        run_async(self.cache.delete("k"))
        run_async(self.cache.clear())
        run_async(self.cache.close())


class TestRedisCacheStore:
    def test_prefixes_keys_and_sets_ttl(self):
        client = MagicMock()
        client.set = AsyncMock()
        client.get = AsyncMock(return_value="payload")
        store = RedisCacheStore(client, prefix="cf")

        run_async(store.set("scraper:doi:x", "payload", 5_000))
        assert run_async(store.get("scraper:doi:x")) == "payload"

        client.set.assert_awaited_once_with("cf:l2:scraper:doi:x", "payload", px=5_000)
        client.get.assert_awaited_once_with("cf:l2:scraper:doi:x")

    def test_clear_deletes_only_prefixed_keys(self):
        async def scan_iter(match, count):
            assert match == "cf:l2:*"
            for key in ("cf:l2:a", "cf:l2:b"):
                yield key

        client = MagicMock()
        client.scan_iter = scan_iter
        client.delete = AsyncMock()
        store = RedisCacheStore(client, prefix="cf")

        run_async(store.clear())
        client.delete.assert_awaited_once_with("cf:l2:a", "cf:l2:b")

    def test_close(self):
        client = MagicMock()
        client.aclose = AsyncMock()
        run_async(RedisCacheStore(client).close())
        client.aclose.assert_awaited_once()


class TestCreateCacheKey:
    def test_joins_parts(self):
        assert create_cache_key(["scrape", "https://example.com/"], "scraper") == "scraper:scrape:https://example.com/"

    def test_skips_none(self):
        assert create_cache_key(["doi", None, 1]) == "cache:doi:1"
