"""Tenant context: resolves the active tenant and its cache scope key.

Three tenancy topologies sit behind one contract so that repositories,
the cache key builder and the services never branch on the mode:

- single: no tenant, scope "global".
- team_scoped: one shared database, rows carry a nullable team column.
- multi_database: one database per tenant; connection routing is owned by
  an external tenancy provider, only the identifier is needed here.

Ambient bindings are context variables set by request middleware
(``current_team_id``/``current_tenant_id``); a context object may also hold
an explicit override for administrative or cross-tenant work.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from tenant_roles.core.config import Settings
from tenant_roles.core.constants import (
    SCOPE_DB_CENTRAL,
    SCOPE_DB_PREFIX,
    SCOPE_GLOBAL,
    SCOPE_TEAM_GLOBAL,
    SCOPE_TEAM_PREFIX,
)
from tenant_roles.domain.enums import TenancyMode
from tenant_roles.shared.utils.sanitization import KeySanitizer

TenantId = int | str

# Current team for the request (team_scoped mode; set by middleware).
current_team_id: ContextVar[TenantId | None] = ContextVar("current_team_id", default=None)

# Current tenant for the request (multi_database mode; set by the tenancy provider hook).
current_tenant_id: ContextVar[TenantId | None] = ContextVar("current_tenant_id", default=None)


class TenantContext(ABC):
    """Resolves tenant id and scope key for one tenancy mode."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._explicit_tenant_id: TenantId | None = None
        self._is_explicitly_set = False

    @abstractmethod
    def mode(self) -> TenancyMode:
        """Return the tenancy mode this context implements."""

    @abstractmethod
    def tenant_id(self) -> TenantId | None:
        """Return the active tenant identifier, or None (global/central)."""

    @abstractmethod
    def scope_key(self) -> str:
        """Return a cache-safe scope key derived from mode and tenant id."""

    def apply_to_context(self) -> None:
        """Expose the resolved tenant to storage-level scoping. No-op by default."""

    def is_single_tenant(self) -> bool:
        return self.mode() is TenancyMode.SINGLE

    def is_team_scoped(self) -> bool:
        return self.mode() is TenancyMode.TEAM_SCOPED

    def is_multi_database(self) -> bool:
        return self.mode() is TenancyMode.MULTI_DATABASE

    def team_foreign_key(self) -> str:
        """Name of the tenant column on roles and permissions."""
        return self._settings.team_foreign_key

    def set_tenant_id(self, tenant_id: TenantId | None) -> None:
        """Explicitly override the tenant (None means explicitly global)."""
        self._explicit_tenant_id = tenant_id
        self._is_explicitly_set = True
        self.apply_to_context()

    def clear_context(self) -> None:
        """Drop the explicit override and fall back to ambient resolution."""
        self._explicit_tenant_id = None
        self._is_explicitly_set = False

    @contextmanager
    def using_tenant(self, tenant_id: TenantId | None) -> Iterator["TenantContext"]:
        """Temporarily run as tenant_id; the previous explicit state is restored on exit.

        Usage:
            with tenant_context.using_tenant(7):
                await matrix_service.build()
        """
        previous = (self._explicit_tenant_id, self._is_explicitly_set)
        self._explicit_tenant_id = tenant_id
        self._is_explicitly_set = True
        try:
            yield self
        finally:
            self._explicit_tenant_id, self._is_explicitly_set = previous

    def __repr__(self) -> str:
        return f"{type(self).__name__}(tenant_id={self.tenant_id()!r}, scope={self.scope_key()!r})"


class SingleTenantContext(TenantContext):
    """No tenancy: tenant id is always None, scope is always "global"."""

    def mode(self) -> TenancyMode:
        return TenancyMode.SINGLE

    def tenant_id(self) -> TenantId | None:
        return None

    def scope_key(self) -> str:
        return SCOPE_GLOBAL

    def set_tenant_id(self, tenant_id: TenantId | None) -> None:
        # Overrides are accepted for interface parity but never change resolution.
        super().set_tenant_id(None)


class TeamScopedTenantContext(TenantContext):
    """Shared-database tenancy keyed by a team column on every row."""

    def mode(self) -> TenancyMode:
        return TenancyMode.TEAM_SCOPED

    def tenant_id(self) -> TenantId | None:
        if self._is_explicitly_set:
            return self._explicit_tenant_id
        return current_team_id.get()

    def scope_key(self) -> str:
        tenant_id = self.tenant_id()
        if tenant_id is None:
            return SCOPE_TEAM_GLOBAL
        return SCOPE_TEAM_PREFIX + KeySanitizer.sanitize(tenant_id)

    def apply_to_context(self) -> None:
        tenant_id = self.tenant_id()
        if tenant_id is not None:
            current_team_id.set(tenant_id)

    def team_id_from_user(self, user: Any) -> TenantId | None:
        """Read the team id from a user: team column, then current_team, then team."""
        if user is None:
            return None
        team_id = getattr(user, self.team_foreign_key(), None)
        if team_id is not None:
            return team_id
        for relation in ("current_team", "team"):
            team = getattr(user, relation, None)
            if team is not None and getattr(team, "id", None) is not None:
                return team.id
        return None

    def initialize_from_user(self, user: Any) -> None:
        """Adopt the user's team as explicit tenant when one can be resolved."""
        team_id = self.team_id_from_user(user)
        if team_id is not None:
            self.set_tenant_id(team_id)


class MultiDatabaseTenantContext(TenantContext):
    """Database-per-tenant: only the identifier matters, routing is external."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._tenant_id_resolver: Callable[[], TenantId | None] | None = None
        self._tenant_key_resolver: Callable[[], str | None] | None = None

    def mode(self) -> TenancyMode:
        return TenancyMode.MULTI_DATABASE

    def tenant_id(self) -> TenantId | None:
        if self._is_explicitly_set:
            return self._explicit_tenant_id
        if self._tenant_id_resolver is not None:
            return self._tenant_id_resolver()
        return current_tenant_id.get()

    def scope_key(self) -> str:
        tenant_key = self._tenant_key()
        if tenant_key is None:
            return SCOPE_DB_CENTRAL
        return SCOPE_DB_PREFIX + KeySanitizer.sanitize(tenant_key)

    def set_tenant_id_resolver(
        self, resolver: Callable[[], TenantId | None]
    ) -> "MultiDatabaseTenantContext":
        """Plug in the external tenancy provider's "current tenant id" lookup."""
        self._tenant_id_resolver = resolver
        return self

    def set_tenant_key_resolver(
        self, resolver: Callable[[], str | None]
    ) -> "MultiDatabaseTenantContext":
        """Plug in a lookup for the key used in the scope (e.g. a tenant slug)."""
        self._tenant_key_resolver = resolver
        return self

    def is_central(self) -> bool:
        return self.tenant_id() is None

    def _tenant_key(self) -> str | None:
        if self._tenant_key_resolver is not None:
            return self._tenant_key_resolver()
        tenant_id = self.tenant_id()
        return str(tenant_id) if tenant_id is not None else None


_CONTEXT_CLASSES: dict[TenancyMode, type[TenantContext]] = {
    TenancyMode.SINGLE: SingleTenantContext,
    TenancyMode.TEAM_SCOPED: TeamScopedTenantContext,
    TenancyMode.MULTI_DATABASE: MultiDatabaseTenantContext,
}


def build_tenant_context(settings: Settings) -> TenantContext:
    """Return the tenant context variant for settings.tenancy_mode."""
    return _CONTEXT_CLASSES[TenancyMode(settings.tenancy_mode)](settings)
