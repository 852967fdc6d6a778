"""Core: config, constants, tenant context and guard resolution.

Single place for settings and shared constants.
"""

from tenant_roles.core.config import Settings, get_settings
from tenant_roles.core.guard import GuardResolver
from tenant_roles.core.tenant_context import TenantContext, build_tenant_context

__all__ = [
    "GuardResolver",
    "Settings",
    "TenantContext",
    "build_tenant_context",
    "get_settings",
]
