"""DTOs for role use cases (no dependency on ORM)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypedDict

from tenant_roles.shared.utils.datetime import ensure_utc
from tenant_roles.shared.utils.i18n import LabelResolver


@dataclass(frozen=True)
class RoleResult:
    """Role read-model (result of find, create, update, clone, etc.).

    label/description are the stored values (plain or per-locale map);
    display_label/display_description are resolved for the current locale.
    permissions is None when permissions were not loaded.
    """

    id: int
    name: str
    guard_name: str
    status: str
    tenant_id: str | None
    label: Any
    description: Any
    display_label: str | None
    display_description: str | None
    created_at: datetime | None
    updated_at: datetime | None
    deleted_at: datetime | None
    permissions: tuple[str, ...] | None = None

    @classmethod
    def from_model(
        cls,
        role: Any,
        labels: LabelResolver | None = None,
        permissions: list[str] | None = None,
    ) -> RoleResult:
        """Map a role entity to RoleResult."""
        return cls(
            id=role.id,
            name=role.name,
            guard_name=role.guard_name,
            status=role.status.value,
            tenant_id=role.tenant_id,
            label=role.label,
            description=role.description,
            display_label=labels.resolve(role.label) if labels else None,
            display_description=labels.resolve(role.description) if labels else None,
            created_at=ensure_utc(role.created_at),
            updated_at=ensure_utc(role.updated_at),
            deleted_at=ensure_utc(role.deleted_at),
            permissions=tuple(permissions) if permissions is not None else None,
        )


class RoleStats(TypedDict):
    total: int
    active: int
    inactive: int
    deleted: int
    with_permissions: int
    without_permissions: int
