"""Repositories: tenant-scoped data access for roles, permissions and their membership."""

from tenant_roles.infrastructure.persistence.repositories.base import BaseRepository
from tenant_roles.infrastructure.persistence.repositories.permission_repo import PermissionRepository
from tenant_roles.infrastructure.persistence.repositories.role_permission_repo import (
    RolePermissionRepository,
)
from tenant_roles.infrastructure.persistence.repositories.role_repo import RoleRepository
from tenant_roles.infrastructure.persistence.repositories.tenant_scope import (
    TenantScope,
    prefer_tenant_rows,
)

__all__ = [
    "BaseRepository",
    "PermissionRepository",
    "RolePermissionRepository",
    "RoleRepository",
    "TenantScope",
    "prefer_tenant_rows",
]
