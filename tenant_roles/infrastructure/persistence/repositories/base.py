"""Base repository: tenant-scoped CRUD, soft delete and listing for roles and permissions."""

from typing import Any

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_roles.application.dtos.common import ListFilters, Page
from tenant_roles.domain.enums import RolePermissionStatus
from tenant_roles.infrastructure.persistence.database import Base
from tenant_roles.infrastructure.persistence.repositories.tenant_scope import (
    TenantScope,
    prefer_tenant_rows,
)

SORTABLE_COLUMNS = frozenset({"id", "name", "created_at", "updated_at", "guard_name"})


class BaseRepository[ModelType: Base]:
    """Base repository for guard- and tenant-scoped, soft-deletable models.

    Every read goes through TenantScope; deleted rows are excluded unless
    asked for.
    """

    def __init__(self, db: AsyncSession, model: type[ModelType], scope: TenantScope) -> None:
        self.db = db
        self.model = model
        self.scope = scope

    def _select(
        self,
        *,
        guard: str | None = None,
        with_deleted: bool = False,
        only_deleted: bool = False,
        tenant_filter: str = "visible",
    ) -> Select:
        model: Any = self.model
        stmt = self._tenant_filtered(select(self.model), tenant_filter)
        if guard is not None:
            stmt = stmt.where(model.guard_name == guard)
        if only_deleted:
            stmt = stmt.where(model.deleted_at.is_not(None))
        elif not with_deleted:
            stmt = stmt.where(model.deleted_at.is_(None))
        return stmt

    def _tenant_filtered(self, stmt: Select, tenant_filter: str) -> Select:
        model: Any = self.model
        if tenant_filter == "all":
            return self.scope.for_all_tenants(stmt, model)
        if tenant_filter == "global":
            return self.scope.only_global(stmt, model)
        if tenant_filter == "own":
            return self.scope.only_tenant_specific(stmt, model)
        return self.scope.apply(stmt, model)

    def new_row_tenant(self) -> str | None:
        """Tenant a new row is stamped with (None outside team_scoped mode)."""
        return self.scope.current_tenant() if self.scope.enabled else None

    async def get_by_id(self, entity_id: int, *, with_deleted: bool = False) -> ModelType | None:
        """Return a single visible record by primary key, or None."""
        model: Any = self.model
        result = await self.db.execute(
            self._select(with_deleted=with_deleted).where(model.id == entity_id)
        )
        return result.scalars().first()

    async def get_by_ids(
        self, ids: list[int], *, guard: str | None = None, with_deleted: bool = False
    ) -> list[ModelType]:
        """Return visible records for ids (missing ids are ignored), id ascending."""
        if not ids:
            return []
        model: Any = self.model
        result = await self.db.execute(
            self._select(guard=guard, with_deleted=with_deleted)
            .where(model.id.in_(ids))
            .order_by(model.id)
        )
        return list(result.scalars().unique().all())

    async def get_by_name(self, name: str, guard: str) -> ModelType | None:
        """Return the visible row named name (tenant row preferred over global)."""
        model: Any = self.model
        stmt = self._select(guard=guard).where(model.name == name)
        result = await self.db.execute(self.scope.tenant_rows_first(stmt, model))
        return result.scalars().first()

    async def get_by_names(self, names: list[str], guard: str) -> dict[str, ModelType]:
        """Return {name: row} for the visible rows among names (one query)."""
        if not names:
            return {}
        model: Any = self.model
        result = await self.db.execute(
            self._select(guard=guard).where(model.name.in_(names))
        )
        return {row.name: row for row in prefer_tenant_rows(result.scalars().all())}

    async def name_taken(
        self,
        name: str,
        guard: str,
        tenant_id: str | None,
        *,
        exclude_id: int | None = None,
    ) -> bool:
        """True if a non-deleted row with this (name, guard, tenant) exists."""
        model: Any = self.model
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(
                model.name == name,
                model.guard_name == guard,
                model.deleted_at.is_(None),
                model.tenant_id.is_(None) if tenant_id is None else model.tenant_id == tenant_id,
            )
        )
        if exclude_id is not None:
            stmt = stmt.where(model.id != exclude_id)
        return bool(await self.db.scalar(stmt))

    async def list_for_guard(self, guard: str, *order_by: Any) -> list[ModelType]:
        """Return every visible non-deleted row for guard."""
        model: Any = self.model
        stmt = self._select(guard=guard).order_by(*(order_by or (model.id,)))
        result = await self.db.execute(stmt)
        return prefer_tenant_rows(result.scalars().all())

    async def paginate(self, guard: str, filters: ListFilters) -> Page[ModelType]:
        """Return one filtered, sorted page plus the total."""
        model: Any = self.model
        only_deleted = filters.only_deleted or filters.status == RolePermissionStatus.DELETED.value
        stmt = self._select(
            guard=guard,
            with_deleted=filters.with_deleted,
            only_deleted=only_deleted,
            tenant_filter=filters.tenant,
        )
        stmt = self._apply_filters(stmt, filters)
        total = await self.db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
        column = getattr(model, filters.sort if filters.sort in SORTABLE_COLUMNS else "id")
        stmt = stmt.order_by(column.asc() if filters.direction == "asc" else column.desc())
        result = await self.db.execute(stmt.offset(filters.offset).limit(filters.per_page))
        return Page(
            items=list(result.scalars().all()),
            total=int(total or 0),
            page=max(filters.page, 1),
            per_page=filters.per_page,
        )

    def _apply_filters(self, stmt: Select, filters: ListFilters) -> Select:
        model: Any = self.model
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            stmt = stmt.where(or_(*self._search_columns(model, pattern)))
        if filters.status in (RolePermissionStatus.ACTIVE.value, RolePermissionStatus.INACTIVE.value):
            stmt = stmt.where(model.stored_status == filters.status)
        return stmt

    def _search_columns(self, model: Any, pattern: str) -> list[Any]:
        return [model.name.ilike(pattern)]

    async def count_by_status(self, guard: str) -> dict[str, int]:
        """Return {"active", "inactive", "deleted", "total"} counts for guard."""
        model: Any = self.model
        stmt = self.scope.apply(
            select(model.status, func.count()).where(model.guard_name == guard), model
        ).group_by(model.status)
        result = await self.db.execute(stmt)
        counts = {status.value: 0 for status in RolePermissionStatus}
        for status, count in result.all():
            counts[status] = int(count)
        counts["total"] = counts["active"] + counts["inactive"]
        return counts

    async def recent(self, guard: str, limit: int = 5) -> list[ModelType]:
        model: Any = self.model
        result = await self.db.execute(
            self._select(guard=guard).order_by(model.created_at.desc(), model.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def create(self, obj: ModelType) -> ModelType:
        """Persist a new record (current tenant stamped in team_scoped mode)."""
        self.scope.stamp(obj)
        self.db.add(obj)
        await self.db.flush()
        await self.db.refresh(obj)
        return obj

    async def update(self, obj: ModelType) -> ModelType:
        """Flush pending changes on an attached record and reload it."""
        await self.db.flush()
        await self.db.refresh(obj)
        return obj

    async def soft_delete(self, obj: ModelType) -> ModelType:
        obj.mark_deleted()
        return await self.update(obj)

    async def restore(self, obj: ModelType) -> ModelType:
        obj.mark_restored()
        return await self.update(obj)

    async def delete(self, obj: ModelType) -> None:
        """Relation-aware hard delete through the unit of work."""
        await self.db.delete(obj)
        await self.db.flush()

    async def delete_row(self, entity_id: int) -> int:
        """Low-level row delete (no ORM events). Returns affected row count."""
        model: Any = self.model
        result = await self.db.execute(delete(self.model).where(model.id == entity_id))
        return result.rowcount or 0
