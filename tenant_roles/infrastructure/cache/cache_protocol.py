"""Cache backend contracts.

Tag support is a capability expressed by type: a backend is either a
KeyOnlyCache or a TaggableCache, and callers check with isinstance.
Backends raise CacheUnavailableException on failure; the cache key
builder is the boundary that swallows it.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any


class KeyOnlyCache(ABC):
    """Cache backend with get/set/delete on individual keys."""

    async def connect(self) -> None:
        """Open connections. Call on app startup."""

    async def disconnect(self) -> None:
        """Close connections. Call on app shutdown."""

    def is_available(self) -> bool:
        """Return True if the backend is usable."""
        return True

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return cached value or None if missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> None:
        """Store a JSON-serialisable value for ttl seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key (no error if absent)."""

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Return True if key is present and unexpired."""


class TaggableCache(KeyOnlyCache):
    """Cache backend that can evict every entry stored under a tag."""

    @abstractmethod
    async def set_tagged(
        self, key: str, value: Any, ttl: int, tags: Iterable[str]
    ) -> None:
        """Store value and register key under each tag."""

    @abstractmethod
    async def flush_tags(self, tags: Iterable[str]) -> int:
        """Evict every key registered under any of tags. Returns keys removed."""
