"""Integration tests for CatalogueSeeder (requires DB)."""

import pytest

from tenant_roles.domain.exceptions import InvalidGuardException


@pytest.mark.requires_db
async def test_sync_roles_creates_defaults_once(stack) -> None:
    created = await stack.seeder.sync_roles()

    assert created == ["super-admin", "admin", "user", "manager"]
    assert await stack.seeder.sync_roles() == []
    admin = await stack.role_repo.get_by_name("admin", "web")
    assert admin.description == "Manage users and content"


@pytest.mark.requires_db
async def test_sync_roles_per_guard(stack) -> None:
    await stack.seeder.sync_roles()
    created = await stack.seeder.sync_roles("api")

    assert len(created) == 4
    with pytest.raises(InvalidGuardException):
        await stack.seeder.sync_roles("admin")


@pytest.mark.requires_db
async def test_sync_permissions_creates_catalogue(stack) -> None:
    created = await stack.seeder.sync_permissions()

    assert len(created) == 16
    assert created[:2] == ["roles.list", "roles.create"]
    assert await stack.seeder.sync_permissions() == []
    force_delete = await stack.permission_repo.get_by_name("users.force-delete", "web")
    assert force_delete.group == "users"


@pytest.mark.requires_db
async def test_sync_permissions_keeps_existing_rows(stack) -> None:
    existing = await stack.permissions.create("users.list", label="Custom label")

    created = await stack.seeder.sync_permissions()

    assert "users.list" not in created
    assert (await stack.permissions.find(existing.id)).label == "Custom label"


@pytest.mark.requires_db
async def test_preview_mapping_writes_nothing(stack) -> None:
    await stack.seeder.sync_roles()
    await stack.seeder.sync_permissions()

    preview = await stack.seeder.preview_mapping()

    assert preview["admin"] == [
        "users.create",
        "users.delete",
        "users.force-delete",
        "users.list",
        "users.restore",
        "users.show",
        "users.update",
    ]
    assert len(preview["super-admin"]) == 16
    admin = await stack.role_repo.get_by_name("admin", "web")
    assert await stack.held(admin) == set()


@pytest.mark.requires_db
async def test_seed_then_sync_from_config(stack) -> None:
    await stack.seeder.sync_roles()
    await stack.seeder.sync_permissions()

    result = await stack.sync.sync_from_config()

    assert result["errors"] == []
    counts = {entry["role"]: entry["permissions_count"] for entry in result["synced"]}
    assert counts == {"super-admin": 16, "admin": 7}


@pytest.mark.requires_db
async def test_update_labels_and_descriptions(make_stack, make_settings) -> None:
    groups = {"users": ["list", "create"]}
    plain = make_stack(make_settings(seed_permission_groups=groups))
    await plain.seeder.sync_roles()
    await plain.seeder.sync_permissions()

    labelled = make_stack(
        make_settings(
            seed_permission_groups=groups,
            seed_permission_labels={"users.list": {"en": "List users"}},
            seed_permission_group_labels={"users": "People"},
        )
    )
    changed = await labelled.seeder.update_labels_and_descriptions()

    assert changed == 2
    users_list = await labelled.permission_repo.get_by_name("users.list", "web")
    assert users_list.label == {"en": "List users"}
    assert users_list.group_label == "People"
    assert await labelled.seeder.update_labels_and_descriptions() == 0
