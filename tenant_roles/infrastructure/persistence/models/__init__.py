"""Persistence models: ORM entities and mixins."""

from tenant_roles.infrastructure.persistence.models.mixins import (
    SoftDeleteMixin,
    StatusMixin,
    TenantScopedMixin,
    TimestampMixin,
)
from tenant_roles.infrastructure.persistence.models.permission import (
    Permission,
    role_has_permissions,
)
from tenant_roles.infrastructure.persistence.models.role import Role

__all__ = [
    "Permission",
    "Role",
    "SoftDeleteMixin",
    "StatusMixin",
    "TenantScopedMixin",
    "TimestampMixin",
    "role_has_permissions",
]
