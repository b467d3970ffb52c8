"""Metadata cache tiers."""

from .redis_store import RedisCacheStore
from .tiered import CacheEntry, LRUStore, TieredCache, create_cache_key

__all__ = [
    "CacheEntry",
    "LRUStore",
    "RedisCacheStore",
    "TieredCache",
    "create_cache_key",
]
