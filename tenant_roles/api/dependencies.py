"""FastAPI dependency providers (composition root).

Builds the request-scoped tenant context, guard resolver, cache key builder,
repositories and services. Routes (owned by the host) depend only on these
providers, not on infrastructure directly. All providers in one request share
the transactional session from get_db_transactional.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_roles.application.interfaces.services import IEventDispatcher, TransactionFactory
from tenant_roles.application.services import (
    CatalogueSeeder,
    PermissionMatrixService,
    PermissionService,
    RolePermissionSyncService,
    RolesManager,
    RoleService,
)
from tenant_roles.core.config import Settings, get_settings
from tenant_roles.core.guard import GuardResolver
from tenant_roles.core.tenant_context import TenantContext, build_tenant_context
from tenant_roles.infrastructure.cache import CacheKeyBuilder, KeyOnlyCache, build_cache_backend
from tenant_roles.infrastructure.messaging import (
    ClearPermissionCacheListener,
    CompositeEventDispatcher,
    InProcessEventDispatcher,
)
from tenant_roles.infrastructure.persistence.database import get_db_transactional
from tenant_roles.infrastructure.persistence.repositories import (
    PermissionRepository,
    RolePermissionRepository,
    RoleRepository,
    TenantScope,
)
from tenant_roles.infrastructure.persistence.transaction import atomic
from tenant_roles.shared.utils.i18n import LabelResolver

logger = logging.getLogger(__name__)

SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_db_transactional)]


def get_tenant_context(settings: SettingsDep) -> TenantContext:
    """Tenant context for this request (ambient bindings set by RolesContextMiddleware)."""
    return build_tenant_context(settings)


def get_guard_resolver(settings: SettingsDep) -> GuardResolver:
    return GuardResolver(settings)


def get_label_resolver(settings: SettingsDep) -> LabelResolver:
    return LabelResolver(
        settings.i18n_default,
        settings.i18n_fallback,
        settings.i18n_locales,
        settings.i18n_enabled,
    )


async def get_cache_backend(request: Request, settings: SettingsDep) -> KeyOnlyCache:
    """Backend created by the lifespan; created and connected lazily when no lifespan ran."""
    cache = getattr(request.app.state, "roles_cache", None)
    if cache is None:
        cache = build_cache_backend(settings)
        await cache.connect()
        request.app.state.roles_cache = cache
        logger.info("Cache backend %s connected lazily (no roles_lifespan)", type(cache).__name__)
    return cache


TenantContextDep = Annotated[TenantContext, Depends(get_tenant_context)]
GuardResolverDep = Annotated[GuardResolver, Depends(get_guard_resolver)]
LabelResolverDep = Annotated[LabelResolver, Depends(get_label_resolver)]


def get_cache_keys(
    settings: SettingsDep,
    cache: Annotated[KeyOnlyCache, Depends(get_cache_backend)],
    tenant_context: TenantContextDep,
    guard_resolver: GuardResolverDep,
) -> CacheKeyBuilder:
    return CacheKeyBuilder(settings, cache, tenant_context, guard_resolver)


CacheKeysDep = Annotated[CacheKeyBuilder, Depends(get_cache_keys)]


def get_event_dispatcher(request: Request, cache_keys: CacheKeysDep) -> IEventDispatcher:
    """Request dispatcher: cache-clearing listener, then the app-wide dispatcher."""
    local = InProcessEventDispatcher()
    ClearPermissionCacheListener(cache_keys).register(local)
    app_dispatcher = getattr(request.app.state, "roles_events", None)
    if app_dispatcher is None:
        return local
    return CompositeEventDispatcher(local, app_dispatcher)


def get_transaction_factory(db: SessionDep) -> TransactionFactory:
    return partial(atomic, db)


def get_tenant_scope(tenant_context: TenantContextDep) -> TenantScope:
    return TenantScope(tenant_context)


TenantScopeDep = Annotated[TenantScope, Depends(get_tenant_scope)]
EventsDep = Annotated[IEventDispatcher, Depends(get_event_dispatcher)]
TransactionDep = Annotated[TransactionFactory, Depends(get_transaction_factory)]


def get_role_repo(db: SessionDep, scope: TenantScopeDep) -> RoleRepository:
    return RoleRepository(db, scope)


def get_permission_repo(db: SessionDep, scope: TenantScopeDep) -> PermissionRepository:
    return PermissionRepository(db, scope)


def get_role_permission_repo(db: SessionDep) -> RolePermissionRepository:
    return RolePermissionRepository(db)


RoleRepoDep = Annotated[RoleRepository, Depends(get_role_repo)]
PermissionRepoDep = Annotated[PermissionRepository, Depends(get_permission_repo)]
RolePermissionRepoDep = Annotated[RolePermissionRepository, Depends(get_role_permission_repo)]


def get_matrix_service(
    guard_resolver: GuardResolverDep,
    cache_keys: CacheKeysDep,
    role_repo: RoleRepoDep,
    permission_repo: PermissionRepoDep,
    labels: LabelResolverDep,
) -> PermissionMatrixService:
    return PermissionMatrixService(guard_resolver, cache_keys, role_repo, permission_repo, labels)


def get_sync_service(
    settings: SettingsDep,
    guard_resolver: GuardResolverDep,
    cache_keys: CacheKeysDep,
    role_repo: RoleRepoDep,
    permission_repo: PermissionRepoDep,
    role_permission_repo: RolePermissionRepoDep,
    events: EventsDep,
    transaction: TransactionDep,
    labels: LabelResolverDep,
) -> RolePermissionSyncService:
    return RolePermissionSyncService(
        settings,
        guard_resolver,
        cache_keys,
        role_repo,
        permission_repo,
        role_permission_repo,
        events,
        transaction,
        labels,
    )


def get_role_service(
    guard_resolver: GuardResolverDep,
    cache_keys: CacheKeysDep,
    role_repo: RoleRepoDep,
    role_permission_repo: RolePermissionRepoDep,
    events: EventsDep,
    transaction: TransactionDep,
    labels: LabelResolverDep,
) -> RoleService:
    return RoleService(
        guard_resolver, cache_keys, role_repo, role_permission_repo, events, transaction, labels
    )


def get_permission_service(
    guard_resolver: GuardResolverDep,
    cache_keys: CacheKeysDep,
    permission_repo: PermissionRepoDep,
    role_permission_repo: RolePermissionRepoDep,
    events: EventsDep,
    transaction: TransactionDep,
    labels: LabelResolverDep,
) -> PermissionService:
    return PermissionService(
        guard_resolver,
        cache_keys,
        permission_repo,
        role_permission_repo,
        events,
        transaction,
        labels,
    )


SyncServiceDep = Annotated[RolePermissionSyncService, Depends(get_sync_service)]


def get_catalogue_seeder(
    settings: SettingsDep,
    guard_resolver: GuardResolverDep,
    cache_keys: CacheKeysDep,
    role_repo: RoleRepoDep,
    permission_repo: PermissionRepoDep,
    sync_service: SyncServiceDep,
    transaction: TransactionDep,
) -> CatalogueSeeder:
    return CatalogueSeeder(
        settings, guard_resolver, cache_keys, role_repo, permission_repo, sync_service, transaction
    )


def get_roles_manager(
    role_repo: RoleRepoDep,
    matrix_service: Annotated[PermissionMatrixService, Depends(get_matrix_service)],
    sync_service: SyncServiceDep,
) -> RolesManager:
    return RolesManager(role_repo, matrix_service, sync_service)
