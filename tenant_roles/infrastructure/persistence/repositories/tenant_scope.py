"""Tenant scoping for SELECT statements on tenant-scoped tables.

Applied explicitly by repositories. In team_scoped mode with a tenant,
rows are global (NULL tenant) or the tenant's own; name lookups order
tenant rows first so a tenant override wins over a global row. In
team_scoped mode without a tenant only global rows are visible. Single
and multi_database modes are not filtered (multi_database isolates by
connection).
"""

from collections.abc import Iterable
from typing import Any, TypeVar

from sqlalchemy import Select, case, or_

from tenant_roles.core.tenant_context import TenantContext, TenantId

RowT = TypeVar("RowT")


def _tenant_value(tenant_id: TenantId) -> str:
    """Tenant column is a string column; ids are compared as strings."""
    return str(tenant_id)


class TenantScope:
    """Statement decorator implementing the tenant visibility rules."""

    def __init__(self, tenant_context: TenantContext) -> None:
        self.tenant_context = tenant_context

    @property
    def enabled(self) -> bool:
        return self.tenant_context.is_team_scoped()

    def current_tenant(self) -> str | None:
        tenant_id = self.tenant_context.tenant_id()
        return _tenant_value(tenant_id) if tenant_id is not None else None

    def apply(self, stmt: Select, model: Any) -> Select:
        """Restrict stmt to rows visible to the current tenant."""
        if not self.enabled:
            return stmt
        return self.for_tenant(stmt, model, self.tenant_context.tenant_id())

    def tenant_rows_first(self, stmt: Select, model: Any) -> Select:
        """Order tenant-specific rows before global ones (name lookups)."""
        if not self.enabled:
            return stmt
        return stmt.order_by(case((model.tenant_id.is_(None), 1), else_=0))

    def for_all_tenants(self, stmt: Select, model: Any) -> Select:
        """No tenant restriction (administrative views)."""
        return stmt

    def only_global(self, stmt: Select, model: Any) -> Select:
        return stmt.where(model.tenant_id.is_(None))

    def only_tenant_specific(self, stmt: Select, model: Any) -> Select:
        """Rows owned by the current tenant (every tenant row when none is set)."""
        tenant_id = self.current_tenant()
        if tenant_id is None:
            return stmt.where(model.tenant_id.is_not(None))
        return stmt.where(model.tenant_id == tenant_id)

    def for_tenant(self, stmt: Select, model: Any, tenant_id: TenantId | None) -> Select:
        """Rows visible to tenant_id: global rows plus its own."""
        column = model.tenant_id
        if tenant_id is None:
            return stmt.where(column.is_(None))
        return stmt.where(or_(column.is_(None), column == _tenant_value(tenant_id)))

    def stamp(self, obj: Any) -> Any:
        """Give a new row the current tenant in team_scoped mode unless already set."""
        if self.enabled and getattr(obj, "tenant_id", None) is None:
            obj.tenant_id = self.current_tenant()
        elif getattr(obj, "tenant_id", None) is not None:
            obj.tenant_id = _tenant_value(obj.tenant_id)
        return obj


def prefer_tenant_rows(rows: Iterable[RowT]) -> list[RowT]:
    """Collapse rows sharing a name to the tenant-specific one.

    Order of the surviving rows follows the input order.
    """
    rows = list(rows)
    chosen: dict[str, Any] = {}
    for row in rows:
        current = chosen.get(row.name)
        if current is None or (current.tenant_id is None and row.tenant_id is not None):
            chosen[row.name] = row
    kept = {id(row) for row in chosen.values()}
    return [row for row in rows if id(row) in kept]
