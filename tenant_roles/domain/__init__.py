"""Domain layer: enums, events and exceptions.

No dependencies on infrastructure or presentation. Used by application
and infrastructure layers.
"""

from tenant_roles.domain.enums import PruneMethod, RolePermissionStatus, SkipReason, TenancyMode
from tenant_roles.domain.exceptions import (
    CacheUnavailableException,
    InvalidGuardException,
    ResourceNotFoundException,
    RolesException,
    TransactionFailureException,
    ValidationException,
)

__all__ = [
    "CacheUnavailableException",
    "InvalidGuardException",
    "PruneMethod",
    "ResourceNotFoundException",
    "RolePermissionStatus",
    "RolesException",
    "SkipReason",
    "TenancyMode",
    "TransactionFailureException",
    "ValidationException",
]
