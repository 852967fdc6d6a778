"""Permission repository: lookups by name/prefix for wildcard expansion, listing and stats."""

from typing import Any

from sqlalchemy import Select, String, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_roles.application.dtos.common import ListFilters
from tenant_roles.core.constants import UNGROUPED
from tenant_roles.domain.enums import RolePermissionStatus
from tenant_roles.infrastructure.persistence.models.permission import Permission
from tenant_roles.infrastructure.persistence.repositories.base import BaseRepository
from tenant_roles.infrastructure.persistence.repositories.tenant_scope import TenantScope


class PermissionRepository(BaseRepository[Permission]):
    """Permission repository. All reads are tenant-scoped through TenantScope."""

    def __init__(self, db: AsyncSession, scope: TenantScope) -> None:
        super().__init__(db, Permission, scope)

    def _search_columns(self, model: Any, pattern: str) -> list[Any]:
        return [
            model.name.ilike(pattern),
            model.group.ilike(pattern),
            cast(model.label, String).ilike(pattern),
            cast(model.description, String).ilike(pattern),
        ]

    def _apply_filters(self, stmt: Select, filters: ListFilters) -> Select:
        stmt = super()._apply_filters(stmt, filters)
        if filters.group:
            stmt = stmt.where(Permission.group == filters.group)
        return stmt

    async def names_for_guard(self, guard: str, prefix: str | None = None) -> list[str]:
        """Return visible permission names for guard, optionally starting with prefix.

        The prefix is matched literally (LIKE metacharacters are escaped).
        """
        stmt = self.scope.apply(select(Permission.name), Permission).where(
            Permission.guard_name == guard, Permission.deleted_at.is_(None)
        )
        if prefix is not None:
            stmt = stmt.where(Permission.name.startswith(prefix, autoescape=True))
        result = await self.db.execute(stmt.order_by(Permission.name))
        return list(dict.fromkeys(result.scalars().all()))

    async def list_for_matrix(self, guard: str) -> list[Permission]:
        """Every visible permission of guard ordered by (group, name)."""
        return await self.list_for_guard(guard, Permission.group, Permission.name)

    async def filter_ids_for_guard(self, ids: list[int], guard: str) -> list[int]:
        """Return the subset of ids that are visible permissions of guard."""
        if not ids:
            return []
        stmt = self.scope.apply(select(Permission.id), Permission).where(
            Permission.id.in_(ids),
            Permission.guard_name == guard,
            Permission.deleted_at.is_(None),
        )
        result = await self.db.execute(stmt.order_by(Permission.id))
        return list(result.scalars().all())

    async def count_by_group(self, guard: str) -> dict[str, int]:
        """Return {group: count} for visible non-deleted permissions of guard."""
        group = func.coalesce(Permission.group, UNGROUPED)
        stmt = (
            self.scope.apply(select(group, func.count()), Permission)
            .where(Permission.guard_name == guard, Permission.deleted_at.is_(None))
            .group_by(group)
            .order_by(group)
        )
        result = await self.db.execute(stmt)
        return {name: int(count) for name, count in result.all()}

    async def create_permission(
        self,
        *,
        name: str,
        guard_name: str,
        group: str | None = None,
        label: Any = None,
        description: Any = None,
        group_label: Any = None,
        status: str = RolePermissionStatus.ACTIVE.value,
    ) -> Permission:
        """Create a permission for the current tenant context."""
        permission = Permission(
            name=name,
            guard_name=guard_name,
            group=group,
            label=label,
            description=description,
            group_label=group_label,
            stored_status=status,
        )
        return await self.create(permission)
