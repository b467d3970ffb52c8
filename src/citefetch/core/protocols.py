"""Protocol definitions for citefetch components."""

from typing import Awaitable, Callable, Protocol, runtime_checkable

# hostname -> every address it resolves to
Resolver = Callable[[str], Awaitable[list[str]]]

# Wall-clock source in seconds; injected so tests can move time
Clock = Callable[[], float]


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for the optional external (L2) cache tier."""

    async def get(self, key: str) -> str | None:
        """Get raw value by key."""
        ...

    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        """Store raw value with expiry in milliseconds."""
        ...

    async def delete(self, key: str) -> None:
        """Remove a key."""
        ...

    async def clear(self) -> None:
        """Remove every key owned by this store."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...


__all__ = [
    "Resolver",
    "Clock",
    "CacheStore",
]
