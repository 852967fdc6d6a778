"""Role repository. Returns ORM rows; services map them to RoleResult."""

from typing import Any

from sqlalchemy import String, cast, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tenant_roles.domain.enums import RolePermissionStatus
from tenant_roles.infrastructure.persistence.models.permission import role_has_permissions
from tenant_roles.infrastructure.persistence.models.role import Role
from tenant_roles.infrastructure.persistence.repositories.base import BaseRepository
from tenant_roles.infrastructure.persistence.repositories.tenant_scope import (
    TenantScope,
    prefer_tenant_rows,
)


class RoleRepository(BaseRepository[Role]):
    """Role repository. All reads are tenant-scoped through TenantScope."""

    def __init__(self, db: AsyncSession, scope: TenantScope) -> None:
        super().__init__(db, Role, scope)

    def _search_columns(self, model: Any, pattern: str) -> list[Any]:
        return [
            model.name.ilike(pattern),
            cast(model.label, String).ilike(pattern),
            cast(model.description, String).ilike(pattern),
        ]

    async def list_with_permission_ids(self, guard: str) -> list[tuple[Role, int | None]]:
        """Return (role, permission_id) pairs for every visible role of guard.

        Single round trip: roles LEFT JOIN role_has_permissions, id ascending.
        A role with no permissions appears once with permission_id None.
        Global roles shadowed by a tenant role of the same name are dropped.
        """
        stmt = self.scope.apply(
            select(Role, role_has_permissions.c.permission_id).outerjoin(
                role_has_permissions, role_has_permissions.c.role_id == Role.id
            ),
            Role,
        ).where(Role.guard_name == guard, Role.deleted_at.is_(None))
        result = await self.db.execute(stmt.order_by(Role.id))
        pairs = [(row[0], row[1]) for row in result.all()]
        roles = {role.id: role for role, _ in pairs}
        kept = {role.id for role in prefer_tenant_rows(roles.values())}
        return [(role, permission_id) for role, permission_id in pairs if role.id in kept]

    async def get_with_permissions(self, role_id: int, *, with_deleted: bool = False) -> Role | None:
        """Return role with its permissions loaded fresh from the database."""
        stmt = (
            self._select(with_deleted=with_deleted)
            .where(Role.id == role_id)
            .options(selectinload(Role.permissions))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()


    async def create_role(
        self,
        *,
        name: str,
        guard_name: str,
        label: Any = None,
        description: Any = None,
        status: str = RolePermissionStatus.ACTIVE.value,
    ) -> Role:
        """Create a role for the current tenant context."""
        role = Role(
            name=name,
            guard_name=guard_name,
            label=label,
            description=description,
            stored_status=status,
        )
        return await self.create(role)
