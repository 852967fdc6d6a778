"""Domain enumerations for roles and permissions.

Cross-cutting enums (e.g. ActorType) live in tenant_roles.shared.enums.
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class RolePermissionStatus(_ValuesMixin, str, Enum):
    """Lifecycle status shared by roles and permissions.

    DELETED is never stored; it is derived from the soft-delete timestamp.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class TenancyMode(_ValuesMixin, str, Enum):
    """How tenant isolation is implemented."""

    SINGLE = "single"
    TEAM_SCOPED = "team_scoped"
    MULTI_DATABASE = "multi_database"


class SkipReason(_ValuesMixin, str, Enum):
    """Why diff sync skipped a permission name."""

    ALREADY_GRANTED = "already_granted"
    NOT_FOUND = "not_found"
    NOT_ASSIGNED = "not_assigned"


class PruneMethod(_ValuesMixin, str, Enum):
    """Which deletion strategy removed a pruned permission."""

    DELETE = "delete"
    SOFT_DELETE = "soft_delete"
    ROW_DELETE = "row_delete"
