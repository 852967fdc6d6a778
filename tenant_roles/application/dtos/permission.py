"""DTOs for permission use cases (no dependency on ORM)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypedDict

from tenant_roles.shared.utils.datetime import ensure_utc
from tenant_roles.shared.utils.i18n import LabelResolver


@dataclass(frozen=True)
class PermissionResult:
    """Permission read-model."""

    id: int
    name: str
    guard_name: str
    status: str
    group: str | None
    tenant_id: str | None
    label: Any
    description: Any
    group_label: Any
    display_label: str | None
    display_description: str | None
    display_group_label: str | None
    created_at: datetime | None
    updated_at: datetime | None
    deleted_at: datetime | None

    @classmethod
    def from_model(cls, permission: Any, labels: LabelResolver | None = None) -> PermissionResult:
        """Map a permission entity to PermissionResult."""
        return cls(
            id=permission.id,
            name=permission.name,
            guard_name=permission.guard_name,
            status=permission.status.value,
            group=permission.group,
            tenant_id=permission.tenant_id,
            label=permission.label,
            description=permission.description,
            group_label=permission.group_label,
            display_label=labels.resolve(permission.label) if labels else None,
            display_description=labels.resolve(permission.description) if labels else None,
            display_group_label=labels.resolve(permission.group_label) if labels else None,
            created_at=ensure_utc(permission.created_at),
            updated_at=ensure_utc(permission.updated_at),
            deleted_at=ensure_utc(permission.deleted_at),
        )


class GroupedPermissionItem(TypedDict):
    id: int
    name: str
    label: str | None
    description: str | None
    status: str


class PermissionGroup(TypedDict):
    label: str
    permissions: list[GroupedPermissionItem]


class PermissionStats(TypedDict):
    """Counts by status, by group, and how many are held by at least one role."""

    total: int
    active: int
    inactive: int
    deleted: int
    by_group: dict[str, int]
    assigned: int
    unassigned: int
