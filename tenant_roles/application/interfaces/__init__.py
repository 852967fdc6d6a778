"""Application interfaces (ports): repository and service protocols.

No runtime imports from tenant_roles.infrastructure.
"""

from tenant_roles.application.interfaces.repositories import (
    IEntityRepository,
    IPermissionRepository,
    IRolePermissionRepository,
    IRoleRepository,
)
from tenant_roles.application.interfaces.services import (
    ICacheKeyBuilder,
    IEventDispatcher,
    IGuardResolver,
    IUnitOfWork,
    TransactionFactory,
)

__all__ = [
    "ICacheKeyBuilder",
    "IEntityRepository",
    "IEventDispatcher",
    "IGuardResolver",
    "IPermissionRepository",
    "IRolePermissionRepository",
    "IRoleRepository",
    "IUnitOfWork",
    "TransactionFactory",
]
