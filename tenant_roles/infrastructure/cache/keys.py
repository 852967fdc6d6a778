"""Contextual cache keys. Single place for key format (DRY).

Keys have the form ``{prefix}:{guard}:{scope}:{locale}:{base}`` so that
entries computed for one guard, tenant or locale are never served to
another. The guard, scope and locale components must not contain
CACHE_KEY_SEP; the base key may (e.g. "permission_matrix:api").

The builder is also the failure boundary for the cache backend:
CacheUnavailableException is logged and degraded to a miss or a skipped
invalidation, never raised to the caller.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from tenant_roles.core.config import Settings
from tenant_roles.core.constants import (
    CACHE_KEY_SEP,
    CACHE_PREFIX,
    DEFAULT_LOCALE_SEGMENT,
    SCOPE_GLOBAL,
    guard_matrix_key,
)
from tenant_roles.core.guard import GuardResolver
from tenant_roles.core.tenant_context import TenantContext, TenantId
from tenant_roles.domain.exceptions import CacheUnavailableException
from tenant_roles.infrastructure.cache.cache_protocol import KeyOnlyCache, TaggableCache
from tenant_roles.shared.utils.i18n import active_locale

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSET: Any = object()


def _validate_key_component(value: str, name: str) -> None:
    """Raise ValueError if value is empty or contains the cache key separator.

    Args:
        value: String component used in a cache key.
        name: Name of the component (for error message).

    Raises:
        ValueError: If value is empty or contains CACHE_KEY_SEP.
    """
    if not value:
        raise ValueError(f"Cache key component {name!r} must not be empty")
    if CACHE_KEY_SEP in value:
        raise ValueError(
            f"Cache key component {name!r} must not contain separator {CACHE_KEY_SEP!r}"
        )


def build_key(guard: str, scope: str, locale: str, base_key: str) -> str:
    """Compose a contextual cache key from its four components."""
    for value, name in ((guard, "guard"), (scope, "scope"), (locale, "locale")):
        _validate_key_component(value, name)
    if not base_key:
        raise ValueError("Cache base key must not be empty")
    return CACHE_KEY_SEP.join((CACHE_PREFIX, guard, scope, locale, base_key))


class CacheKeyBuilder:
    """Builds guard/tenant/locale-aware cache keys and wraps the cache backend."""

    def __init__(
        self,
        settings: Settings,
        cache: KeyOnlyCache,
        tenant_context: TenantContext,
        guard_resolver: GuardResolver,
    ) -> None:
        self._settings = settings
        self._cache = cache
        self._tenant_context = tenant_context
        self._guard_resolver = guard_resolver

    @property
    def backend(self) -> KeyOnlyCache:
        return self._cache

    def key(self, base_key: str) -> str:
        """Return the cache key for base_key in the current context."""
        return build_key(
            self._guard_resolver.guard(),
            self._tenant_context.scope_key(),
            self.locale(),
            base_key,
        )

    def key_with_context(
        self,
        base_key: str,
        guard: str | None = None,
        locale: str | None = None,
        tenant_id: TenantId | None = _UNSET,
    ) -> str:
        """Return the key base_key would have under another guard, locale or tenant.

        Passing tenant_id=None targets the global/central scope.
        """
        if tenant_id is _UNSET:
            scope = self._tenant_context.scope_key()
        else:
            with self._tenant_context.using_tenant(tenant_id):
                scope = self._tenant_context.scope_key()
        return build_key(
            guard or self._guard_resolver.guard(),
            scope,
            locale or self.locale(),
            base_key,
        )

    def tags(self) -> list[str]:
        """Tags for entries written in the current context (prefix tag first)."""
        tags = [CACHE_PREFIX]
        scope = self._tenant_context.scope_key()
        if scope != SCOPE_GLOBAL:
            tags.append(CACHE_KEY_SEP.join((CACHE_PREFIX, scope)))
        tags.append(self._guard_tag(self._guard_resolver.guard()))
        return tags

    def locale(self) -> str:
        """Locale segment: "default" unless i18n is enabled."""
        if not self._settings.i18n_enabled:
            return DEFAULT_LOCALE_SEGMENT
        return active_locale(True, self._settings.i18n_locales, self._settings.i18n_default)

    def ttl(self) -> int:
        return self._settings.cache_ttl

    def is_enabled(self) -> bool:
        return self._settings.cache_enabled

    def supports_tags(self) -> bool:
        return isinstance(self._cache, TaggableCache)

    async def remember(
        self,
        base_key: str,
        compute: Callable[[], Awaitable[T]],
        ttl: int | None = None,
    ) -> T:
        """Return the cached value for base_key, computing and storing it on a miss.

        When caching is disabled compute() runs on every call.
        """
        if not self.is_enabled():
            return await compute()

        key = self.key(base_key)
        try:
            cached = await self._cache.get(key)
        except CacheUnavailableException as e:
            logger.warning("Cache read failed for %s, computing fresh: %s", key, e.message)
            cached = None
        if cached is not None:
            logger.debug("Cache HIT: %s", key)
            return cached

        logger.debug("Cache MISS: %s", key)
        value = await compute()
        seconds = ttl if ttl is not None else self.ttl()
        try:
            if isinstance(self._cache, TaggableCache):
                await self._cache.set_tagged(key, value, seconds, self.tags())
            else:
                await self._cache.set(key, value, seconds)
        except CacheUnavailableException as e:
            logger.warning("Cache write failed for %s: %s", key, e.message)
        return value

    async def has(self, base_key: str) -> bool:
        """Return True if base_key is cached in the current context."""
        key = self.key(base_key)
        try:
            return await self._cache.has(key)
        except CacheUnavailableException as e:
            logger.warning("Cache lookup failed for %s: %s", key, e.message)
            return False

    async def forget(self, base_key: str) -> bool:
        """Remove exactly the contextual key for base_key. Returns False on cache failure."""
        return await self._forget_keys([self.key(base_key)])

    async def flush(self) -> None:
        """Evict the package's cache entries.

        With tags: everything under the prefix tag (every tenant, guard and
        locale), dropping the current context's scope and guard tags with it.
        Without tags: the configured base keys and the per-guard matrix keys
        for the current guard, tenant and locale only.
        """
        if await self._flush_tags(self.tags()):
            return
        await self._forget_keys(self.key(base) for base in self._fallback_base_keys())

    async def flush_all(self) -> None:
        """Like flush(), but also covers every configured guard and locale.

        With tags the guard tag of every configured guard is dropped as well.
        """
        if await self._flush_tags([*self.tags(), *self._guard_tags()]):
            return
        locales = list(dict.fromkeys([*self._settings.i18n_locales, DEFAULT_LOCALE_SEGMENT]))
        keys = [
            self.key_with_context(base, guard=guard, locale=locale)
            for guard in self._settings.auth_guards
            for locale in locales
            for base in self._fallback_base_keys()
        ]
        await self._forget_keys(keys)

    def _fallback_base_keys(self) -> list[str]:
        """Base keys forgotten when the backend has no tags."""
        bases = list(self._settings.cache_keys)
        bases.extend(guard_matrix_key(guard) for guard in self._settings.auth_guards)
        return list(dict.fromkeys(bases))

    @staticmethod
    def _guard_tag(guard: str) -> str:
        return CACHE_KEY_SEP.join((CACHE_PREFIX, "guard", guard))

    def _guard_tags(self) -> list[str]:
        return [self._guard_tag(guard) for guard in self._settings.auth_guards]

    async def _flush_tags(self, tags: list[str]) -> bool:
        """Flush tags (deduplicated) when supported. Returns False if the backend is key-only."""
        if not isinstance(self._cache, TaggableCache):
            return False
        try:
            await self._cache.flush_tags(list(dict.fromkeys(tags)))
        except CacheUnavailableException as e:
            logger.warning("Cache flush skipped: %s", e.message)
        return True

    async def _forget_keys(self, keys: Iterable[str]) -> bool:
        ok = True
        for key in keys:
            try:
                await self._cache.delete(key)
                logger.debug("Cache DELETE: %s", key)
            except CacheUnavailableException as e:
                logger.warning("Cache invalidation skipped for %s: %s", key, e.message)
                ok = False
        return ok
