"""Pytest configuration and fixtures for tenant-roles.

Database fixtures run against in-memory SQLite through aiosqlite. The
connection hooks hand transaction control to SQLAlchemy so SAVEPOINTs
(nested units of work) behave as they do on Postgres. All imports use
tenant_roles.*.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tenant_roles.application.services import (
    CatalogueSeeder,
    PermissionMatrixService,
    PermissionService,
    RolePermissionSyncService,
    RolesManager,
    RoleService,
)
from tenant_roles.application.services.permission_service import group_from_name
from tenant_roles.core.config import Settings
from tenant_roles.core.guard import GuardResolver
from tenant_roles.core.tenant_context import (
    TenantContext,
    build_tenant_context,
    current_team_id,
    current_tenant_id,
)
from tenant_roles.domain.events import DomainEvent
from tenant_roles.infrastructure.cache import CacheKeyBuilder, InMemoryTaggedCache, KeyOnlyCache
from tenant_roles.infrastructure.messaging import (
    ClearPermissionCacheListener,
    InProcessEventDispatcher,
)
from tenant_roles.infrastructure.persistence.database import Base
from tenant_roles.infrastructure.persistence.models import Permission, Role
from tenant_roles.infrastructure.persistence.repositories import (
    PermissionRepository,
    RolePermissionRepository,
    RoleRepository,
    TenantScope,
)
from tenant_roles.infrastructure.persistence.transaction import atomic
from tenant_roles.shared.context import clear_current_user, set_current_locale
from tenant_roles.shared.utils.i18n import LabelResolver


class StatementCounter:
    """Records every statement sent to the database cursor."""

    def __init__(self) -> None:
        self.statements: list[str] = []

    def record(self, conn, cursor, statement, parameters, context, executemany) -> None:
        self.statements.append(statement)

    @property
    def selects(self) -> list[str]:
        return [s for s in self.statements if s.lstrip().upper().startswith("SELECT")]

    def reset(self) -> None:
        self.statements.clear()


def build_settings(**overrides: Any) -> Settings:
    """Settings for tests: no .env file, no database URL, in-memory tagged cache."""
    values: dict[str, Any] = {
        "database_url": "",
        "cache_backend": "memory",
        "cache_tagging": True,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@dataclass
class RolesStack:
    """Every collaborator wired the way the FastAPI dependencies wire them."""

    settings: Settings
    session: AsyncSession
    tenant_context: TenantContext
    guard_resolver: GuardResolver
    cache: KeyOnlyCache
    cache_keys: CacheKeyBuilder
    events: InProcessEventDispatcher
    labels: LabelResolver
    role_repo: RoleRepository
    permission_repo: PermissionRepository
    role_permission_repo: RolePermissionRepository
    matrix: PermissionMatrixService
    sync: RolePermissionSyncService
    roles: RoleService
    permissions: PermissionService
    seeder: CatalogueSeeder
    manager: RolesManager
    recorded: list[DomainEvent] = field(default_factory=list)

    async def add_role(self, name: str, guard: str = "web", **kwargs: Any) -> Role:
        return await self.role_repo.create_role(name=name, guard_name=guard, **kwargs)

    async def add_permissions(self, *names: str, guard: str = "web") -> dict[str, Permission]:
        created = {}
        for name in names:
            created[name] = await self.permission_repo.create_permission(
                name=name, guard_name=guard, group=group_from_name(name)
            )
        return created

    async def held(self, role: Role) -> set[str]:
        return set(await self.role_permission_repo.permission_names_for_role(role.id))

    def recorded_of(self, event_type: type[DomainEvent]) -> list[Any]:
        return [e for e in self.recorded if isinstance(e, event_type)]


def build_stack(
    session: AsyncSession,
    settings: Settings,
    cache: KeyOnlyCache | None = None,
) -> RolesStack:
    tenant_context = build_tenant_context(settings)
    guard_resolver = GuardResolver(settings)
    cache = cache if cache is not None else InMemoryTaggedCache()
    cache_keys = CacheKeyBuilder(settings, cache, tenant_context, guard_resolver)
    events = InProcessEventDispatcher()
    ClearPermissionCacheListener(cache_keys).register(events)
    labels = LabelResolver(
        settings.i18n_default,
        settings.i18n_fallback,
        settings.i18n_locales,
        settings.i18n_enabled,
    )
    scope = TenantScope(tenant_context)
    role_repo = RoleRepository(session, scope)
    permission_repo = PermissionRepository(session, scope)
    role_permission_repo = RolePermissionRepository(session)
    transaction = partial(atomic, session)

    matrix = PermissionMatrixService(guard_resolver, cache_keys, role_repo, permission_repo, labels)
    sync = RolePermissionSyncService(
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
    stack = RolesStack(
        settings=settings,
        session=session,
        tenant_context=tenant_context,
        guard_resolver=guard_resolver,
        cache=cache,
        cache_keys=cache_keys,
        events=events,
        labels=labels,
        role_repo=role_repo,
        permission_repo=permission_repo,
        role_permission_repo=role_permission_repo,
        matrix=matrix,
        sync=sync,
        roles=RoleService(
            guard_resolver, cache_keys, role_repo, role_permission_repo, events, transaction, labels
        ),
        permissions=PermissionService(
            guard_resolver,
            cache_keys,
            permission_repo,
            role_permission_repo,
            events,
            transaction,
            labels,
        ),
        seeder=CatalogueSeeder(
            settings, guard_resolver, cache_keys, role_repo, permission_repo, sync, transaction
        ),
        manager=RolesManager(role_repo, matrix, sync),
    )

    async def record(event: DomainEvent) -> None:
        stack.recorded.append(event)

    events.subscribe(DomainEvent, record)
    return stack


@pytest.fixture(autouse=True)
def _reset_ambient_context():
    """Clear team, tenant, locale and actor bindings around every test."""
    current_team_id.set(None)
    current_tenant_id.set(None)
    set_current_locale(None)
    clear_current_user()
    yield
    current_team_id.set(None)
    current_tenant_id.set(None)
    set_current_locale(None)
    clear_current_user()


@pytest.fixture
def settings() -> Settings:
    """Default test settings (single tenancy, guards web/api)."""
    return build_settings()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Factory for settings with overrides, e.g. make_settings(tenancy_mode="team_scoped")."""
    return build_settings


@pytest.fixture
async def engine():
    """In-memory SQLite engine with the schema created from Base.metadata."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def statement_counter(engine):
    """Counts statements issued through engine (reset before measuring)."""
    counter = StatementCounter()
    event.listen(engine.sync_engine, "before_cursor_execute", counter.record)
    yield counter
    event.remove(engine.sync_engine, "before_cursor_execute", counter.record)


@pytest.fixture
async def db_session(engine) -> AsyncSession:
    """Database session for repository/integration tests. Rolls back after test."""
    factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_stack(db_session) -> Callable[..., RolesStack]:
    """Factory building a RolesStack on the test session for given settings."""

    def _make(settings: Settings | None = None, cache: KeyOnlyCache | None = None) -> RolesStack:
        return build_stack(db_session, settings or build_settings(), cache)

    return _make


@pytest.fixture
def stack(make_stack, settings) -> RolesStack:
    """RolesStack with default settings."""
    return make_stack(settings)
