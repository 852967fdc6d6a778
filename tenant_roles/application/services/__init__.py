"""Application services (use cases over the repository and cache ports)."""

from tenant_roles.application.services.catalogue_seeder import CatalogueSeeder
from tenant_roles.application.services.permission_matrix_service import (
    PermissionMatrixService,
)
from tenant_roles.application.services.permission_service import PermissionService
from tenant_roles.application.services.role_permission_sync_service import (
    RolePermissionSyncService,
    matches_pattern,
)
from tenant_roles.application.services.role_service import RoleService
from tenant_roles.application.services.roles_manager import RolesManager

__all__ = [
    "CatalogueSeeder",
    "PermissionMatrixService",
    "PermissionService",
    "RolePermissionSyncService",
    "RoleService",
    "RolesManager",
    "matches_pattern",
]
