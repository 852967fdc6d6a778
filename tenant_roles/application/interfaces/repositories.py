"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
Entity types are left as Any so the application layer has no ORM imports.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from tenant_roles.application.dtos.common import ListFilters, Page


class IEntityRepository(Protocol):
    """Operations shared by the role and permission repositories."""

    def new_row_tenant(self) -> str | None:
        """Tenant a new row would be stamped with."""

    async def get_by_id(self, entity_id: int, *, with_deleted: bool = False) -> Any | None:
        """Return a visible entity by id, or None."""

    async def get_by_ids(
        self, ids: list[int], *, guard: str | None = None, with_deleted: bool = False
    ) -> list[Any]:
        """Return visible entities for ids (id ascending)."""

    async def get_by_name(self, name: str, guard: str) -> Any | None:
        """Return the visible entity named name in guard (tenant row preferred)."""

    async def get_by_names(self, names: list[str], guard: str) -> dict[str, Any]:
        """Return {name: entity} for visible entities among names."""

    async def name_taken(
        self, name: str, guard: str, tenant_id: str | None, *, exclude_id: int | None = None
    ) -> bool:
        """True if (name, guard, tenant) is used by a non-deleted row."""

    async def list_for_guard(self, guard: str, *order_by: Any) -> list[Any]:
        """Return every visible non-deleted entity of guard."""

    async def paginate(self, guard: str, filters: ListFilters) -> Page[Any]:
        """Return one page of entities matching filters."""

    async def count_by_status(self, guard: str) -> dict[str, int]:
        """Return counts per status plus total."""

    async def recent(self, guard: str, limit: int = 5) -> list[Any]:
        """Return the most recently created entities."""

    async def create(self, obj: Any) -> Any:
        """Persist a new entity."""

    async def update(self, obj: Any) -> Any:
        """Flush changes on an entity."""

    async def soft_delete(self, obj: Any) -> Any:
        """Mark entity deleted."""

    async def restore(self, obj: Any) -> Any:
        """Clear the deleted mark."""

    async def delete(self, obj: Any) -> None:
        """Relation-aware hard delete."""

    async def delete_row(self, entity_id: int) -> int:
        """Low-level row delete; returns affected rows."""


class IRoleRepository(IEntityRepository, Protocol):
    """Protocol for role repository (DIP)."""

    async def list_with_permission_ids(self, guard: str) -> list[tuple[Any, int | None]]:
        """Return (role, permission_id) pairs in one round trip."""

    async def get_with_permissions(self, role_id: int, *, with_deleted: bool = False) -> Any | None:
        """Return role with permissions loaded fresh."""

    async def create_role(
        self,
        *,
        name: str,
        guard_name: str,
        label: Any = None,
        description: Any = None,
        status: str = ...,
    ) -> Any:
        """Create a role for the current tenant context."""


class IPermissionRepository(IEntityRepository, Protocol):
    """Protocol for permission repository (DIP)."""

    async def names_for_guard(self, guard: str, prefix: str | None = None) -> list[str]:
        """Return permission names of guard, optionally by literal prefix."""

    async def list_for_matrix(self, guard: str) -> list[Any]:
        """Return permissions of guard ordered by (group, name)."""

    async def filter_ids_for_guard(self, ids: list[int], guard: str) -> list[int]:
        """Return the ids that belong to guard."""

    async def count_by_group(self, guard: str) -> dict[str, int]:
        """Return {group: count}."""

    async def create_permission(
        self,
        *,
        name: str,
        guard_name: str,
        group: str | None = None,
        label: Any = None,
        description: Any = None,
        group_label: Any = None,
        status: str = ...,
    ) -> Any:
        """Create a permission for the current tenant context."""


class IRolePermissionRepository(Protocol):
    """Protocol for role–permission membership (DIP)."""

    async def permission_ids_for_role(self, role_id: int) -> set[int]:
        """Return ids held by role."""

    async def permission_names_for_role(self, role_id: int) -> dict[str, int]:
        """Return {name: id} held by role."""

    async def attach(self, role_id: int, permission_ids: list[int]) -> list[int]:
        """Attach missing permissions; return ids inserted."""

    async def detach(self, role_id: int, permission_ids: list[int]) -> int:
        """Detach permissions; return rows removed."""

    async def replace(self, role_id: int, permission_ids: list[int]) -> tuple[list[int], list[int]]:
        """Make role hold exactly permission_ids."""

    async def detach_all_roles(self, permission_id: int) -> int:
        """Remove permission from every role."""

    async def detach_all_permissions(self, role_id: int) -> int:
        """Remove every permission from role."""

    async def copy(self, source_role_id: int, target_role_id: int) -> list[int]:
        """Copy source's permissions onto target."""

    async def count_assigned(self, permission_ids: list[int]) -> int:
        """How many of permission_ids are held by any role."""

    async def role_counts(self, role_ids: list[int]) -> dict[int, int]:
        """Return {role_id: permissions held}."""
