"""Redis-backed L2 cache store."""

import logging

from redis import asyncio as redis_asyncio

logger = logging.getLogger(__name__)


class RedisCacheStore:
    """L2 cache tier on ``redis.asyncio``.

    Keys are namespaced with ``prefix``; ``clear`` removes only those keys.
    """

    def __init__(self, client: "redis_asyncio.Redis", prefix: str = "citefetch") -> None:
        self._client = client
        self.prefix = prefix.strip(":")

    @classmethod
    def from_url(cls, url: str, prefix: str = "citefetch") -> "RedisCacheStore":
        """Create a store from a ``redis://`` URL (connects lazily)."""
        client = redis_asyncio.from_url(url, decode_responses=True)
        logger.info("Redis cache store configured (prefix=%s)", prefix)
        return cls(client, prefix=prefix)

    def _key(self, key: str) -> str:
        return f"{self.prefix}:l2:{key}"

    async def get(self, key: str) -> str | None:
        return await self._client.get(self._key(key))

    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        await self._client.set(self._key(key), value, px=ttl_ms)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def clear(self) -> None:
        batch: list[str] = []
        async for key in self._client.scan_iter(match=f"{self.prefix}:l2:*", count=500):
            batch.append(key)
            if len(batch) >= 500:
                await self._client.delete(*batch)
                batch = []
        if batch:
            await self._client.delete(*batch)

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["RedisCacheStore"]
