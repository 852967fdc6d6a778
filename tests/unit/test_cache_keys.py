"""Unit tests for CacheKeyBuilder: key format, uniqueness, remember, flush and degradation."""

from typing import Any

import pytest

from tenant_roles.core.guard import GuardResolver
from tenant_roles.core.tenant_context import build_tenant_context
from tenant_roles.domain.exceptions import CacheUnavailableException
from tenant_roles.infrastructure.cache import (
    CacheKeyBuilder,
    InMemoryCache,
    InMemoryTaggedCache,
    KeyOnlyCache,
    build_key,
)
from tenant_roles.shared.context import set_current_locale


class BrokenCache(KeyOnlyCache):
    """Backend whose every call fails."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def get(self, key: str) -> Any | None:
        self.calls.append("get")
        raise CacheUnavailableException("get", key)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        self.calls.append("set")
        raise CacheUnavailableException("set", key)

    async def delete(self, key: str) -> None:
        self.calls.append("delete")
        raise CacheUnavailableException("delete", key)

    async def has(self, key: str) -> bool:
        raise CacheUnavailableException("has", key)


def _builder(settings, cache=None, tenant_id=None) -> CacheKeyBuilder:
    tenant_context = build_tenant_context(settings)
    if tenant_id is not None:
        tenant_context.set_tenant_id(tenant_id)
    return CacheKeyBuilder(
        settings, cache or InMemoryTaggedCache(), tenant_context, GuardResolver(settings)
    )


def test_key_format(settings) -> None:
    """{prefix}:{guard}:{scope}:{locale}:{base}."""
    builder = _builder(settings)
    assert builder.key("permission_matrix") == "tenant_roles:web:global:default:permission_matrix"


def test_key_differs_per_tenant_scope(make_settings) -> None:
    """Same guard, locale and base key; different tenants give different keys."""
    team_settings = make_settings(tenancy_mode="team_scoped")
    key_a = _builder(team_settings, tenant_id=1).key("permission_matrix")
    key_b = _builder(team_settings, tenant_id=2).key("permission_matrix")
    assert key_a != key_b
    assert key_a == "tenant_roles:web:team_1:default:permission_matrix"


def test_key_differs_per_guard(settings) -> None:
    guard_resolver = GuardResolver(settings)
    builder = CacheKeyBuilder(
        settings, InMemoryTaggedCache(), build_tenant_context(settings), guard_resolver
    )
    web_key = builder.key("permission_matrix")
    with guard_resolver.override("api"):
        api_key = builder.key("permission_matrix")
    assert web_key != api_key
    assert builder.key_with_context("permission_matrix", guard="api") == api_key


def test_key_differs_per_locale(make_settings) -> None:
    """Locale segment follows the request locale when i18n is enabled."""
    builder = _builder(make_settings(i18n_enabled=True, i18n_locales=["en", "ar"]))
    assert builder.locale() == "en"
    english = builder.key("grouped_permissions")
    set_current_locale("ar")
    assert builder.key("grouped_permissions") != english
    assert builder.key("grouped_permissions").endswith(":ar:grouped_permissions")
    set_current_locale("fr")
    assert builder.locale() == "en"


def test_key_with_context_targets_other_tenant(make_settings) -> None:
    """tenant_id=None targets the global scope without changing the current one."""
    builder = _builder(make_settings(tenancy_mode="team_scoped"), tenant_id=3)
    assert ":team_global:" in builder.key_with_context("role_stats", tenant_id=None)
    assert ":team_9:" in builder.key_with_context("role_stats", tenant_id=9)
    assert ":team_3:" in builder.key("role_stats")


def test_build_key_rejects_separator_in_components() -> None:
    with pytest.raises(ValueError):
        build_key("we:b", "global", "default", "x")
    with pytest.raises(ValueError):
        build_key("web", "", "default", "x")
    assert build_key("web", "global", "default", "permission_matrix:api").endswith(
        "permission_matrix:api"
    )


def test_tags_include_prefix_scope_and_guard(make_settings) -> None:
    """Global scope has no scope tag; a tenant scope adds one."""
    assert _builder(make_settings()).tags() == ["tenant_roles", "tenant_roles:guard:web"]
    tenant_tags = _builder(make_settings(tenancy_mode="team_scoped"), tenant_id=5).tags()
    assert tenant_tags == ["tenant_roles", "tenant_roles:team_5", "tenant_roles:guard:web"]


def test_supports_tags_is_a_type_check(settings) -> None:
    assert _builder(settings, InMemoryTaggedCache()).supports_tags()
    assert not _builder(settings, InMemoryCache()).supports_tags()


@pytest.mark.asyncio
async def test_remember_computes_once_when_enabled(settings) -> None:
    builder = _builder(settings)
    calls = []

    async def compute() -> dict:
        calls.append(1)
        return {"value": len(calls)}

    assert await builder.remember("role_stats", compute) == {"value": 1}
    assert await builder.remember("role_stats", compute) == {"value": 1}
    assert len(calls) == 1
    assert await builder.has("role_stats")


@pytest.mark.asyncio
async def test_remember_always_recomputes_when_disabled(make_settings) -> None:
    """With caching disabled nothing is memoized."""
    builder = _builder(make_settings(cache_enabled=False))
    calls = []

    async def compute() -> int:
        calls.append(1)
        return len(calls)

    assert await builder.remember("role_stats", compute) == 1
    assert await builder.remember("role_stats", compute) == 2
    assert not await builder.has("role_stats")


@pytest.mark.asyncio
async def test_remember_degrades_to_miss_when_cache_fails(settings) -> None:
    """A failing backend never fails the caller."""
    cache = BrokenCache()
    builder = _builder(settings, cache)

    async def compute() -> str:
        return "fresh"

    assert await builder.remember("role_stats", compute) == "fresh"
    assert cache.calls == ["get", "set"]
    assert await builder.has("role_stats") is False
    assert await builder.forget("role_stats") is False
    await builder.flush()


@pytest.mark.asyncio
async def test_forget_removes_only_current_context_key(make_settings) -> None:
    settings = make_settings(tenancy_mode="team_scoped")
    cache = InMemoryTaggedCache()
    tenant_a = _builder(settings, cache, tenant_id="a")
    tenant_b = _builder(settings, cache, tenant_id="b")

    async def compute() -> str:
        return "matrix"

    await tenant_a.remember("permission_matrix", compute)
    await tenant_b.remember("permission_matrix", compute)
    assert await tenant_a.forget("permission_matrix")
    assert not await tenant_a.has("permission_matrix")
    assert await tenant_b.has("permission_matrix")


@pytest.mark.asyncio
async def test_flush_with_tags_evicts_every_context(make_settings) -> None:
    """Tagged flush clears the prefix tag: every tenant and guard."""
    settings = make_settings(tenancy_mode="team_scoped")
    cache = InMemoryTaggedCache()
    tenant_a = _builder(settings, cache, tenant_id="a")
    tenant_b = _builder(settings, cache, tenant_id="b")

    async def compute() -> int:
        return 1

    await tenant_a.remember("permission_matrix", compute)
    await tenant_b.remember("role_stats", compute)
    await tenant_a.flush()
    assert cache.keys() == []


@pytest.mark.asyncio
async def test_flush_without_tags_forgets_enumerated_keys(settings) -> None:
    """Key-only fallback forgets the configured base keys, nothing else."""
    cache = InMemoryCache()
    builder = _builder(settings, cache)

    async def compute() -> int:
        return 1

    await builder.remember("permission_matrix", compute)
    await builder.remember("not_enumerated", compute)
    await builder.flush()
    assert cache.keys() == [builder.key("not_enumerated")]


@pytest.mark.asyncio
async def test_flush_all_without_tags_covers_every_guard_and_locale(make_settings) -> None:
    settings = make_settings(i18n_enabled=True, i18n_locales=["en", "ar"])
    cache = InMemoryCache()
    builder = _builder(settings, cache)
    for guard in ("web", "api"):
        for locale in ("en", "ar", "default"):
            key = builder.key_with_context("permission_matrix", guard=guard, locale=locale)
            await cache.set(key, 1, 60)

    await builder.flush()
    assert len(cache.keys()) == 5

    await builder.flush_all()
    assert cache.keys() == []


@pytest.mark.asyncio
async def test_flush_without_tags_forgets_per_guard_matrix_keys(settings) -> None:
    """Matrices cached under an explicit guard are part of the fallback list."""
    cache = InMemoryCache()
    builder = _builder(settings, cache)

    async def compute() -> str:
        return "matrix"

    await builder.remember("permission_matrix:web", compute)
    await builder.remember("permission_matrix:api", compute)
    await builder.flush()
    assert cache.keys() == []


class RecordingTaggedCache(InMemoryTaggedCache):
    """Tagged cache that records every flush_tags call."""

    def __init__(self) -> None:
        super().__init__()
        self.flushed: list[list[str]] = []

    async def flush_tags(self, tags) -> int:
        tags = list(tags)
        self.flushed.append(tags)
        return await super().flush_tags(tags)


@pytest.mark.asyncio
async def test_tagged_flush_drops_scope_and_guard_tags(make_settings) -> None:
    cache = RecordingTaggedCache()
    builder = _builder(make_settings(tenancy_mode="team_scoped"), cache, tenant_id=5)

    async def compute() -> int:
        return 1

    await builder.remember("role_stats", compute)
    await builder.flush()
    assert cache.flushed == [["tenant_roles", "tenant_roles:team_5", "tenant_roles:guard:web"]]
    assert cache.keys() == []

    await builder.flush_all()
    assert cache.flushed[-1] == [
        "tenant_roles",
        "tenant_roles:team_5",
        "tenant_roles:guard:web",
        "tenant_roles:guard:api",
    ]
