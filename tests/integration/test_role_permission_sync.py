"""Integration tests for diff sync, wildcard expansion, full replace and config sync (requires DB)."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tenant_roles.core.constants import MATRIX_CACHE_KEY
from tenant_roles.domain.events import PermissionsChangedForRole
from tenant_roles.domain.exceptions import (
    ResourceNotFoundException,
    TransactionFailureException,
    ValidationException,
)
from tenant_roles.infrastructure.cache import InMemoryCache
from tenant_roles.infrastructure.persistence.transaction import run_after_commit
from tenant_roles.shared.context import set_current_user


@pytest.mark.requires_db
async def test_diff_sync_grants_and_skips_unknown_and_held(stack) -> None:
    """Grant order is preserved; unknown and already-held names are skipped with a reason."""
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list", "users.create", "posts.edit")

    result = await stack.sync.diff_sync(role, grant=["users.create", "users.list"])
    assert result == {"granted": ["users.create", "users.list"], "revoked": [], "skipped": []}

    result = await stack.sync.diff_sync(role, grant=["users.list", "ghost.view", "posts.edit"])
    assert result["granted"] == ["posts.edit"]
    assert result["skipped"] == [
        {"permission": "users.list", "reason": "already_granted"},
        {"permission": "ghost.view", "reason": "not_found"},
    ]
    assert await stack.held(role) == {"users.list", "users.create", "posts.edit"}


@pytest.mark.requires_db
async def test_diff_sync_expands_group_wildcards(stack) -> None:
    role = await stack.add_role("moderator")
    await stack.add_permissions(
        "posts.edit", "posts.comments.create", "posts.comments.delete", "postscript.run"
    )

    result = await stack.sync.diff_sync(role, grant=["posts.comments.*"])
    assert sorted(result["granted"]) == ["posts.comments.create", "posts.comments.delete"]

    result = await stack.sync.diff_sync(role, grant=["posts.*"])
    assert result["granted"] == ["posts.edit"]
    assert "postscript.run" not in await stack.held(role)


@pytest.mark.requires_db
async def test_diff_sync_star_grants_every_permission_of_the_guard(stack) -> None:
    role = await stack.add_role("super-admin")
    await stack.add_permissions("users.list", "posts.edit")
    await stack.add_permissions("api.tokens", guard="api")

    result = await stack.sync.diff_sync(role, grant=["*"])

    assert sorted(result["granted"]) == ["posts.edit", "users.list"]
    assert await stack.held(role) == {"posts.edit", "users.list"}


@pytest.mark.requires_db
async def test_diff_sync_revokes_by_wildcard_and_reports_not_assigned(stack) -> None:
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list", "users.create", "posts.edit")
    await stack.sync.diff_sync(role, grant=["users.*"])

    result = await stack.sync.diff_sync(role, revoke=["users.*", "posts.edit"])

    assert sorted(result["revoked"]) == ["users.create", "users.list"]
    assert result["skipped"] == [{"permission": "posts.edit", "reason": "not_assigned"}]
    assert await stack.held(role) == set()


@pytest.mark.requires_db
async def test_diff_sync_grant_and_revoke_against_snapshot(stack) -> None:
    """Revoke is judged against what the role held before the call."""
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list", "users.create")
    await stack.sync.diff_sync(role, grant=["users.list"])

    result = await stack.sync.diff_sync(role, grant=["users.create"], revoke=["users.list"])

    assert result["granted"] == ["users.create"]
    assert result["revoked"] == ["users.list"]
    assert await stack.held(role) == {"users.create"}


@pytest.mark.requires_db
async def test_diff_sync_is_idempotent(stack) -> None:
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list")
    await stack.sync.diff_sync(role, grant=["users.list"])
    events_before = len(stack.recorded_of(PermissionsChangedForRole))

    result = await stack.sync.diff_sync(role, grant=["users.list"])

    assert result["granted"] == []
    assert len(stack.recorded_of(PermissionsChangedForRole)) == events_before


@pytest.mark.requires_db
async def test_diff_sync_rejects_malformed_pattern_before_writing(stack) -> None:
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list")

    with pytest.raises(ValidationException) as exc_info:
        await stack.sync.diff_sync(role, grant=["users.list", "us*"])

    assert exc_info.value.details["field"] == "patterns"
    assert await stack.held(role) == set()


@pytest.mark.requires_db
async def test_diff_sync_rolls_back_when_store_fails(stack) -> None:
    """A failure in the revoke step undoes the grant step too."""
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list", "users.create")
    await stack.sync.diff_sync(role, grant=["users.list"])
    stack.role_permission_repo.detach = AsyncMock(side_effect=SQLAlchemyError("disk I/O error"))

    with pytest.raises(TransactionFailureException) as exc_info:
        await stack.sync.diff_sync(role, grant=["users.create"], revoke=["users.list"])

    assert exc_info.value.details == {"operation": "diff_sync", "reason": "disk I/O error"}
    assert await stack.held(role) == {"users.list"}


@pytest.mark.requires_db
async def test_diff_sync_emits_event_with_actor_and_flushes_matrix(stack) -> None:
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list")
    await stack.matrix.build()
    assert await stack.cache_keys.has(MATRIX_CACHE_KEY)
    set_current_user("user-42")

    await stack.sync.diff_sync(role, grant=["users.list"])

    assert not await stack.cache_keys.has(MATRIX_CACHE_KEY)
    [event] = stack.recorded_of(PermissionsChangedForRole)
    assert event.role_id == role.id
    assert event.permission_names == ("users.list",)
    assert event.actor_id == "user-42"
    assert event.actor_type == "user"
    matrix = await stack.matrix.build()
    assert matrix["matrix"][0]["roles"]["editor"]["has_permission"] is True


@pytest.mark.requires_db
async def test_assign_permissions_replaces_and_drops_foreign_ids(stack) -> None:
    """Ids of another guard or unknown ids are silently left out."""
    role = await stack.add_role("editor")
    web = await stack.add_permissions("users.list", "users.create", "posts.edit")
    api = await stack.add_permissions("tokens.create", guard="api")
    await stack.sync.diff_sync(role, grant=["posts.edit"])

    result = await stack.sync.assign_permissions(
        role, [web["users.list"].id, web["users.create"].id, api["tokens.create"].id, 9999]
    )

    assert set(result.permissions) == {"users.list", "users.create"}
    assert await stack.held(role) == {"users.list", "users.create"}


@pytest.mark.requires_db
async def test_assign_permissions_with_empty_list_clears_role(stack) -> None:
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list")
    await stack.sync.diff_sync(role, grant=["users.list"])

    result = await stack.sync.assign_permissions(role, [])

    assert result.permissions == ()
    assert len(stack.recorded_of(PermissionsChangedForRole)) == 2


@pytest.mark.requires_db
async def test_add_and_remove_permission_by_name_or_id(stack) -> None:
    role = await stack.add_role("editor")
    created = await stack.add_permissions("users.list", "users.create")

    await stack.sync.add_permission(role, "users.list")
    result = await stack.sync.add_permission(role, created["users.create"].id)
    assert set(result.permissions) == {"users.list", "users.create"}

    result = await stack.sync.remove_permission(role, "users.list")
    assert result.permissions == ("users.create",)


@pytest.mark.requires_db
async def test_add_permission_of_another_guard_is_not_found(stack) -> None:
    role = await stack.add_role("editor")
    api = await stack.add_permissions("tokens.create", guard="api")

    with pytest.raises(ResourceNotFoundException) as exc_info:
        await stack.sync.add_permission(role, api["tokens.create"].id)
    assert exc_info.value.details["resource_type"] == "permission"

    with pytest.raises(ResourceNotFoundException):
        await stack.sync.add_permission(role, "tokens.create")


@pytest.mark.requires_db
async def test_adding_held_permission_emits_no_event(stack) -> None:
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list")
    await stack.sync.add_permission(role, "users.list")

    await stack.sync.add_permission(role, "users.list")

    assert len(stack.recorded_of(PermissionsChangedForRole)) == 1


@pytest.mark.requires_db
async def test_sync_from_config_replaces_each_role_and_reports_missing(make_stack, make_settings) -> None:
    stack = make_stack(
        make_settings(
            seed_permission_groups={"users": ["list", "create"], "posts": ["edit"]},
            seed_map={"admin": ["users.*"], "ghost": ["*"], "super-admin": ["*"]},
        )
    )
    admin = await stack.add_role("admin")
    super_admin = await stack.add_role("super-admin")
    await stack.add_permissions("users.list", "users.create", "posts.edit")
    await stack.sync.diff_sync(admin, grant=["posts.edit"])

    result = await stack.sync.sync_from_config()

    assert result["errors"] == [{"role": "ghost", "error": "Role 'ghost' not found"}]
    synced = {entry["role"]: entry for entry in result["synced"]}
    assert synced["admin"]["permissions_count"] == 2
    assert synced["super-admin"]["permissions_count"] == 3
    assert "pruned" not in result
    assert await stack.held(admin) == {"users.list", "users.create"}
    assert await stack.held(super_admin) == {"users.list", "users.create", "posts.edit"}


@pytest.mark.requires_db
async def test_sync_from_config_prunes_permissions_outside_catalogue(make_stack, make_settings) -> None:
    stack = make_stack(
        make_settings(seed_permission_groups={"users": ["list"]}, seed_map={"admin": ["*"]})
    )
    admin = await stack.add_role("admin")
    created = await stack.add_permissions("users.list", "legacy.export")
    legacy_id = created["legacy.export"].id
    await stack.sync.diff_sync(admin, grant=["legacy.export"])

    result = await stack.sync.sync_from_config(prune=True)

    assert result["pruned"] == [{"permission": "legacy.export", "method": "delete"}]
    assert result["prune_errors"] == []
    assert await stack.permission_repo.get_by_id(legacy_id, with_deleted=True) is None
    assert await stack.held(admin) == {"users.list"}


@pytest.mark.requires_db
async def test_prune_falls_back_to_soft_delete(make_stack, make_settings) -> None:
    stack = make_stack(
        make_settings(seed_permission_groups={"users": ["list"]}, seed_map={"admin": ["users.*"]})
    )
    await stack.add_role("admin")
    created = await stack.add_permissions("users.list", "legacy.export")
    stack.permission_repo.delete = AsyncMock(side_effect=SQLAlchemyError("constraint"))

    result = await stack.sync.sync_from_config(prune=True)

    assert result["pruned"] == [{"permission": "legacy.export", "method": "soft_delete"}]
    legacy = await stack.permission_repo.get_by_id(created["legacy.export"].id, with_deleted=True)
    assert legacy.deleted_at is not None


@pytest.mark.requires_db
async def test_guard_matrix_is_fresh_after_grant_without_tag_support(make_stack, settings) -> None:
    """Key-only cache: the per-guard matrix entry is forgotten on change."""
    stack = make_stack(settings, cache=InMemoryCache())
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list")
    before = await stack.matrix.for_guard("web")
    assert before["matrix"][0]["roles"]["editor"]["has_permission"] is False

    await stack.sync.diff_sync(role, grant=["users.list"])

    after = await stack.matrix.for_guard("web")
    assert after["matrix"][0]["roles"]["editor"]["has_permission"] is True


@pytest.mark.requires_db
async def test_outer_rollback_emits_no_event_and_keeps_cache(stack) -> None:
    """Inside a caller's transaction, flush and event wait for its commit."""
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list")
    await stack.matrix.build()
    await stack.session.commit()
    role_id = role.id

    with pytest.raises(RuntimeError):
        async with stack.session.begin():
            await stack.sync.diff_sync(role, grant=["users.list"])
            assert stack.recorded_of(PermissionsChangedForRole) == []
            raise RuntimeError("request failed")

    assert stack.recorded_of(PermissionsChangedForRole) == []
    assert await stack.cache_keys.has(MATRIX_CACHE_KEY)
    assert await stack.role_permission_repo.permission_names_for_role(role_id) == {}


@pytest.mark.requires_db
async def test_outer_commit_emits_event_after_commit(stack) -> None:
    role = await stack.add_role("editor")
    await stack.add_permissions("users.list")
    await stack.matrix.build()
    await stack.session.commit()

    async with stack.session.begin():
        await stack.sync.diff_sync(role, grant=["users.list"])
        assert stack.recorded_of(PermissionsChangedForRole) == []
        assert await stack.cache_keys.has(MATRIX_CACHE_KEY)
    await run_after_commit(stack.session)

    [event] = stack.recorded_of(PermissionsChangedForRole)
    assert event.permission_names == ("users.list",)
    assert not await stack.cache_keys.has(MATRIX_CACHE_KEY)


@pytest.mark.requires_db
async def test_sync_from_config_isolates_store_failures_per_role(make_stack, make_settings) -> None:
    """A store error on one role is reported; the roles after it still sync."""
    stack = make_stack(
        make_settings(
            seed_permission_groups={"users": ["list"], "posts": ["edit"]},
            seed_map={"admin": ["users.*"], "editor": ["posts.*"], "super-admin": ["*"]},
        )
    )
    for name in ("admin", "editor", "super-admin"):
        await stack.add_role(name)
    await stack.add_permissions("users.list", "posts.edit")
    get_by_names = stack.permission_repo.get_by_names

    async def failing_get_by_names(names, guard):
        if names == ["posts.edit"]:
            raise SQLAlchemyError("database is locked")
        return await get_by_names(names, guard)

    stack.permission_repo.get_by_names = failing_get_by_names

    result = await stack.sync.sync_from_config()

    assert result["errors"] == [
        {"role": "editor", "error": "Transaction failed during sync_from_config:editor"}
    ]
    assert [entry["role"] for entry in result["synced"]] == ["admin", "super-admin"]
    super_admin = await stack.role_repo.get_by_name("super-admin", "web")
    editor = await stack.role_repo.get_by_name("editor", "web")
    assert await stack.held(super_admin) == {"users.list", "posts.edit"}
    assert await stack.held(editor) == set()
