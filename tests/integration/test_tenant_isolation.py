"""Integration tests for team-scoped tenancy: row visibility, overrides and per-tenant caching (requires DB)."""

import pytest

from tenant_roles.application.dtos.common import ListFilters
from tenant_roles.domain.exceptions import ValidationException


@pytest.fixture
def team_stack(make_stack, make_settings):
    return make_stack(make_settings(tenancy_mode="team_scoped"))


@pytest.mark.requires_db
async def test_same_role_name_in_two_tenants(team_stack) -> None:
    with team_stack.tenant_context.using_tenant("acme"):
        acme = await team_stack.roles.create("editor")
    with team_stack.tenant_context.using_tenant("globex"):
        globex = await team_stack.roles.create("editor")

    assert acme.tenant_id == "acme"
    assert globex.tenant_id == "globex"
    assert acme.id != globex.id


@pytest.mark.requires_db
async def test_duplicate_name_within_tenant_is_rejected(team_stack) -> None:
    with team_stack.tenant_context.using_tenant("acme"):
        await team_stack.roles.create("editor")
        with pytest.raises(ValidationException):
            await team_stack.roles.create("editor")


@pytest.mark.requires_db
async def test_listing_shows_global_and_own_rows(team_stack) -> None:
    await team_stack.roles.create("admin")
    with team_stack.tenant_context.using_tenant("acme"):
        await team_stack.roles.create("acme-only")
    with team_stack.tenant_context.using_tenant("globex"):
        await team_stack.roles.create("globex-only")

    with team_stack.tenant_context.using_tenant("acme"):
        visible = await team_stack.roles.list(ListFilters(sort="name", direction="asc"))
        own = await team_stack.roles.list(ListFilters(tenant="own"))
        everything = await team_stack.roles.list(ListFilters(tenant="all"))

    assert [role.name for role in visible.items] == ["acme-only", "admin"]
    assert [role.name for role in own.items] == ["acme-only"]
    assert everything.total == 3

    # Without a tenant only global rows are visible.
    outside = await team_stack.roles.list()
    assert [role.name for role in outside.items] == ["admin"]


@pytest.mark.requires_db
async def test_tenant_row_overrides_global_row_of_same_name(team_stack) -> None:
    global_admin = await team_stack.roles.create("admin")
    with team_stack.tenant_context.using_tenant("acme"):
        acme_admin = await team_stack.roles.create("admin")
        found = await team_stack.roles.find_by_name("admin")
        matrix = await team_stack.matrix.build()

    assert found.id == acme_admin.id
    assert [role["id"] for role in matrix["roles"]] == [acme_admin.id]
    assert (await team_stack.roles.find_by_name("admin")).id == global_admin.id


@pytest.mark.requires_db
async def test_permission_grants_stay_inside_tenant(team_stack) -> None:
    await team_stack.add_permissions("users.list", "users.create")
    with team_stack.tenant_context.using_tenant("acme"):
        acme_role = await team_stack.add_role("editor")
        await team_stack.sync.diff_sync(acme_role, grant=["users.*"])
        await team_stack.add_permissions("acme.reports")
    with team_stack.tenant_context.using_tenant("globex"):
        globex_role = await team_stack.add_role("editor")
        result = await team_stack.sync.diff_sync(globex_role, grant=["*", "acme.reports"])

    assert sorted(result["granted"]) == ["users.create", "users.list"]
    assert result["skipped"] == [{"permission": "acme.reports", "reason": "not_found"}]
    assert await team_stack.held(acme_role) == {"users.list", "users.create"}


@pytest.mark.requires_db
async def test_matrix_is_cached_per_tenant(team_stack) -> None:
    with team_stack.tenant_context.using_tenant("acme"):
        await team_stack.add_role("acme-role")
        acme_key = team_stack.cache_keys.key("permission_matrix")
        acme_matrix = await team_stack.matrix.build()
    with team_stack.tenant_context.using_tenant("globex"):
        await team_stack.add_role("globex-role")
        globex_key = team_stack.cache_keys.key("permission_matrix")
        globex_matrix = await team_stack.matrix.build()

    assert acme_key == "tenant_roles:web:team_acme:default:permission_matrix"
    assert globex_key == "tenant_roles:web:team_globex:default:permission_matrix"
    assert [role["name"] for role in acme_matrix["roles"]] == ["acme-role"]
    assert [role["name"] for role in globex_matrix["roles"]] == ["globex-role"]


@pytest.mark.requires_db
async def test_ambient_team_id_scopes_new_rows(team_stack) -> None:
    """A tenant bound through set_tenant_id stamps new rows."""
    team_stack.tenant_context.set_tenant_id(7)
    role = await team_stack.roles.create("support")
    permission = await team_stack.permissions.create("tickets.reply")

    assert role.tenant_id == "7"
    assert permission.tenant_id == "7"
    assert team_stack.cache_keys.key("role_stats").split(":")[2] == "team_7"
