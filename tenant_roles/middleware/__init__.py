"""Starlette middleware binding the roles request context."""

from tenant_roles.middleware.roles_context import RolesContextMiddleware

__all__ = ["RolesContextMiddleware"]
