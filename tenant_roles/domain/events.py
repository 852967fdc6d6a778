"""Domain events emitted by role/permission mutations.

Events are plain frozen dataclasses; dispatchers decide where they go
(in-process listeners, Redis channel). to_dict() is the wire payload.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar

from tenant_roles.shared.context import get_current_actor_type
from tenant_roles.shared.utils.datetime import utc_now


def _timestamp() -> str:
    return utc_now().isoformat()


def _actor_type() -> str:
    return get_current_actor_type().value


@dataclass(frozen=True)
class DomainEvent:
    """Base event: name, actor and when it happened."""

    event_name: ClassVar[str] = "domain_event"

    actor_id: str | None = field(default=None, kw_only=True)
    actor_type: str = field(default_factory=_actor_type, kw_only=True)
    occurred_at: str = field(default_factory=_timestamp, kw_only=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON publish."""
        data = asdict(self)
        data["event"] = self.event_name
        return data


@dataclass(frozen=True)
class PermissionsChangedForRole(DomainEvent):
    """A role's permission set changed; carries the resulting set."""

    event_name: ClassVar[str] = "permissions_changed_for_role"

    role_id: int
    role_name: str
    guard_name: str
    tenant_id: str | None
    permission_ids: tuple[int, ...]
    permission_names: tuple[str, ...]


@dataclass(frozen=True)
class RoleCreated(DomainEvent):
    event_name: ClassVar[str] = "role_created"

    role_id: int
    role_name: str
    guard_name: str


@dataclass(frozen=True)
class RoleUpdated(DomainEvent):
    event_name: ClassVar[str] = "role_updated"

    role_id: int
    role_name: str
    guard_name: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RoleDeleted(DomainEvent):
    """forced is True for permanent deletion, False for soft delete."""

    event_name: ClassVar[str] = "role_deleted"

    role_id: int
    role_name: str
    guard_name: str
    forced: bool = False


@dataclass(frozen=True)
class PermissionCreated(DomainEvent):
    event_name: ClassVar[str] = "permission_created"

    permission_id: int
    permission_name: str
    guard_name: str


@dataclass(frozen=True)
class PermissionUpdated(DomainEvent):
    event_name: ClassVar[str] = "permission_updated"

    permission_id: int
    permission_name: str
    guard_name: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PermissionDeleted(DomainEvent):
    event_name: ClassVar[str] = "permission_deleted"

    permission_id: int
    permission_name: str
    guard_name: str
    forced: bool = False


PERMISSION_CHANGING_EVENTS: tuple[type[DomainEvent], ...] = (
    PermissionsChangedForRole,
    RoleCreated,
    RoleUpdated,
    RoleDeleted,
    PermissionCreated,
    PermissionUpdated,
    PermissionDeleted,
)
