"""Application DTOs: results returned by the services (no ORM types)."""

from tenant_roles.application.dtos.common import (
    BulkFailure,
    BulkOperationResult,
    ListFilters,
    Page,
)
from tenant_roles.application.dtos.matrix import GroupedMatrixResult, MatrixResult
from tenant_roles.application.dtos.permission import (
    PermissionGroup,
    PermissionResult,
    PermissionStats,
)
from tenant_roles.application.dtos.role import RoleResult, RoleStats
from tenant_roles.application.dtos.sync import DiffResult, SyncResult

__all__ = [
    "BulkFailure",
    "BulkOperationResult",
    "DiffResult",
    "GroupedMatrixResult",
    "ListFilters",
    "MatrixResult",
    "Page",
    "PermissionGroup",
    "PermissionResult",
    "PermissionStats",
    "RoleResult",
    "RoleStats",
    "SyncResult",
]
