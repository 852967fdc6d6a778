"""Cache: backends, capability contracts and the contextual key builder.

Backends are chosen by settings.cache_backend; key format lives in keys.py (DRY).
"""

from tenant_roles.core.config import Settings
from tenant_roles.infrastructure.cache.cache_protocol import KeyOnlyCache, TaggableCache
from tenant_roles.infrastructure.cache.keys import CacheKeyBuilder, build_key
from tenant_roles.infrastructure.cache.memory_cache import InMemoryCache, InMemoryTaggedCache
from tenant_roles.infrastructure.cache.redis_cache import RedisCache


def build_cache_backend(settings: Settings) -> KeyOnlyCache:
    """Return the cache backend configured by settings (not yet connected)."""
    if settings.cache_backend == "redis":
        return RedisCache(settings)
    if settings.cache_tagging:
        return InMemoryTaggedCache()
    return InMemoryCache()


__all__ = [
    "CacheKeyBuilder",
    "InMemoryCache",
    "InMemoryTaggedCache",
    "KeyOnlyCache",
    "RedisCache",
    "TaggableCache",
    "build_cache_backend",
    "build_key",
]
