"""Two-tier metadata cache.

L1 is a bounded in-process LRU with per-entry expiry. L2 is an optional
external store (Redis) sharing the key space with its own TTL. L2 failures
are logged and absorbed; the cache never fails its caller.
"""

import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from citefetch.core.models import CacheStats
from citefetch.core.protocols import CacheStore, Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with absolute expiry (epoch seconds)."""

    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class LRUStore:
    """Bounded least-recently-used map of CacheEntry objects.

    Expired entries are not purged proactively; reads treat them as absent.
    """

    def __init__(self, max_items: int) -> None:
        if max_items <= 0:
            raise ValueError("max_items must be positive")
        self.max_items = max_items
        self._data: OrderedDict[str, CacheEntry[Any]] = OrderedDict()

    def get(self, key: str, now: float) -> CacheEntry[Any] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return entry

    def set(self, key: str, entry: CacheEntry[Any]) -> None:
        self._data[key] = entry
        self._data.move_to_end(key)
        while len(self._data) > self.max_items:
            evicted, _ = self._data.popitem(last=False)
            logger.debug("L1 evicted: %s", evicted)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class TieredCache:
    """L1 (memory) + optional L2 (external) cache with hit/miss accounting.

    Args:
        l1_max_items: L1 capacity before LRU eviction.
        l1_ttl_ms: Default L1 time-to-live.
        l2: Optional external store; None disables the second tier.
        l2_ttl_ms: Default L2 time-to-live.
        encode: Serializer for values written to L2.
        decode: Deserializer for values read from L2.
        clock: Wall-clock source in seconds.
    """

    def __init__(
        self,
        l1_max_items: int = 100,
        l1_ttl_ms: int = 5 * 60 * 1000,
        l2: CacheStore | None = None,
        l2_ttl_ms: int = 60 * 60 * 1000,
        encode: Callable[[Any], str] = json.dumps,
        decode: Callable[[str], Any] = json.loads,
        clock: Clock = time.time,
    ) -> None:
        self._l1 = LRUStore(l1_max_items)
        self.l1_ttl_ms = l1_ttl_ms
        self._l2 = l2
        self.l2_ttl_ms = l2_ttl_ms
        self._encode = encode
        self._decode = decode
        self._clock = clock

        self._l1_hits = 0
        self._l2_hits = 0
        self._misses = 0
        # bumped by every set/delete/clear; guards L2 repopulation
        self._writes = 0

        if l2 is not None:
            logger.info("Cache L2 enabled")

    @property
    def l2_enabled(self) -> bool:
        return self._l2 is not None

    async def get(self, key: str) -> Any | None:
        """Return the cached value or None, counting exactly one hit or miss."""
        now = self._clock()

        entry = self._l1.get(key, now)
        if entry is not None:
            self._l1_hits += 1
            logger.debug("Cache L1 hit: %s", key)
            return entry.value

        if self._l2 is not None:
            writes = self._writes
            l2_entry = await self._l2_get(key, now)
            if writes != self._writes:
                # a write landed while L2 was read; L1 holds the newest value
                entry = self._l1.get(key, self._clock())
                if entry is not None:
                    self._l1_hits += 1
                    return entry.value
            if l2_entry is not None:
                self._l2_hits += 1
                logger.debug("Cache L2 hit: %s", key)
                if writes == self._writes:
                    l1_expiry = min(l2_entry.expires_at, now + self.l1_ttl_ms / 1000)
                    self._l1.set(key, CacheEntry(l2_entry.value, l1_expiry))
                return l2_entry.value

        self._misses += 1
        logger.debug("Cache miss: %s", key)
        return None

    async def _l2_get(self, key: str, now: float) -> CacheEntry[Any] | None:
        try:
            raw = await self._l2.get(key)
            if raw is None:
                return None
            payload = json.loads(raw)
            entry = CacheEntry(self._decode(payload["value"]), float(payload["expires_at"]))
        except Exception as exc:
            logger.warning("Cache L2 get error for %s: %s", key, exc)
            return None
        if entry.is_expired(now):
            return None
        return entry

    async def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        """Store ``value`` in both tiers.

        An explicit ``ttl_ms`` applies to both tiers; otherwise each tier uses
        its own default.
        """
        now = self._clock()
        self._writes += 1
        l1_ttl = ttl_ms if ttl_ms is not None else self.l1_ttl_ms
        self._l1.set(key, CacheEntry(value, now + l1_ttl / 1000))

        if self._l2 is None:
            logger.debug("Cache set L1: %s", key)
            return

        l2_ttl = ttl_ms if ttl_ms is not None else self.l2_ttl_ms
        try:
            payload = json.dumps({"value": self._encode(value), "expires_at": now + l2_ttl / 1000})
            await self._l2.set(key, payload, l2_ttl)
            logger.debug("Cache set L1+L2: %s", key)
        except Exception as exc:
            logger.warning("Cache L2 set error for %s: %s", key, exc)

    async def delete(self, key: str) -> None:
        """Remove ``key`` from both tiers."""
        self._writes += 1
        self._l1.delete(key)
        if self._l2 is not None:
            try:
                await self._l2.delete(key)
            except Exception as exc:
                logger.warning("Cache L2 delete error for %s: %s", key, exc)
        logger.debug("Cache deleted: %s", key)

    async def clear(self) -> None:
        """Remove every entry from both tiers."""
        self._writes += 1
        self._l1.clear()
        if self._l2 is not None:
            try:
                await self._l2.clear()
            except Exception as exc:
                logger.warning("Cache L2 clear error: %s", exc)
        logger.info("Cache cleared")

    async def close(self) -> None:
        """Release the L2 connection."""
        if self._l2 is not None:
            try:
                await self._l2.close()
            except Exception as exc:
                logger.debug("Error closing cache L2: %s", exc)

    def stats(self) -> CacheStats:
        """Cumulative counters; ``size`` is the current L1 entry count."""
        hits = self._l1_hits + self._l2_hits
        total = hits + self._misses
        return CacheStats(
            hits=hits,
            misses=self._misses,
            size=len(self._l1),
            hit_rate=hits / total if total else 0.0,
            l1_hits=self._l1_hits,
            l2_hits=self._l2_hits,
        )

    def l1_stats(self) -> dict[str, int]:
        """L1-only view: size and L1 hits."""
        return {"size": len(self._l1), "hits": self._l1_hits, "misses": self._misses}


def create_cache_key(parts: Iterable[str | int | None], prefix: str = "cache") -> str:
    """Join non-None ``parts`` into a ``prefix:a:b`` key."""
    valid = [str(p) for p in parts if p is not None]
    return ":".join([prefix, *valid])


__all__ = [
    "CacheEntry",
    "LRUStore",
    "TieredCache",
    "create_cache_key",
]
