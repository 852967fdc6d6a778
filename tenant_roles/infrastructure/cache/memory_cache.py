"""In-process cache backends (single worker, tests, local development).

Values are stored JSON-encoded so they behave like the Redis backend:
callers always get a fresh copy and non-serialisable values fail early.
"""

import json
import time
from collections.abc import Callable, Iterable
from typing import Any

from tenant_roles.infrastructure.cache.cache_protocol import KeyOnlyCache, TaggableCache


class InMemoryCache(KeyOnlyCache):
    """Key-only cache with per-entry TTL on a monotonic clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._live_entry(key)
        if entry is None:
            return None
        return json.loads(entry[0])

    async def set(self, key: str, value: Any, ttl: int) -> None:
        self._entries[key] = (json.dumps(value), self._clock() + ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def keys(self) -> list[str]:
        """Return every unexpired key (test and debugging aid)."""
        return [key for key in list(self._entries) if self._live_entry(key) is not None]

    def _live_entry(self, key: str) -> tuple[str, float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._entries[key]
            return None
        return entry


class InMemoryTaggedCache(InMemoryCache, TaggableCache):
    """In-memory cache with tag-based eviction."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__(clock)
        self._tags: dict[str, set[str]] = {}

    async def set_tagged(
        self, key: str, value: Any, ttl: int, tags: Iterable[str]
    ) -> None:
        await self.set(key, value, ttl)
        for tag in tags:
            self._tags.setdefault(tag, set()).add(key)

    async def flush_tags(self, tags: Iterable[str]) -> int:
        removed = 0
        for tag in tags:
            for key in self._tags.pop(tag, set()):
                if key in self._entries:
                    del self._entries[key]
                    removed += 1
        return removed
