"""Role application service: listing, lifecycle, cloning and statistics for roles."""

from __future__ import annotations

from functools import partial
from typing import Any

from tenant_roles.application.dtos.common import BulkOperationResult, ListFilters, Page
from tenant_roles.application.dtos.role import RoleResult, RoleStats
from tenant_roles.application.interfaces.repositories import (
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
from tenant_roles.application.services.common import (
    UNSET,
    parse_status,
    run_bulk,
    validate_role_name,
)
from tenant_roles.core.constants import ROLE_STATS_CACHE_KEY
from tenant_roles.domain.enums import RolePermissionStatus
from tenant_roles.domain.events import (
    PermissionsChangedForRole,
    RoleCreated,
    RoleDeleted,
    RoleUpdated,
)
from tenant_roles.domain.exceptions import ResourceNotFoundException, ValidationException
from tenant_roles.shared.context import get_current_actor_id
from tenant_roles.shared.telemetry import get_logger
from tenant_roles.shared.utils.i18n import LabelResolver

logger = get_logger(__name__)


class RoleService:
    """Create, update, delete and query roles of the resolved guard and tenant."""

    def __init__(
        self,
        guard_resolver: IGuardResolver,
        cache_keys: ICacheKeyBuilder,
        role_repo: IRoleRepository,
        role_permission_repo: IRolePermissionRepository,
        events: IEventDispatcher,
        transaction: TransactionFactory,
        labels: LabelResolver,
    ) -> None:
        self._guard_resolver = guard_resolver
        self._cache_keys = cache_keys
        self._role_repo = role_repo
        self._role_permission_repo = role_permission_repo
        self._events = events
        self._transaction = transaction
        self._labels = labels

    async def list(self, filters: ListFilters | None = None, guard: str | None = None) -> Page[RoleResult]:
        """One page of roles with their permission counts unloaded."""
        guard = self._resolve_guard(guard)
        page = await self._role_repo.paginate(guard, filters or ListFilters())
        return Page(
            items=[self._to_result(role) for role in page.items],
            total=page.total,
            page=page.page,
            per_page=page.per_page,
        )

    async def find(self, role_id: int, *, with_deleted: bool = False) -> RoleResult:
        """Raises ResourceNotFoundException if role_id is not visible."""
        return self._to_result(await self._get(role_id, with_deleted=with_deleted))

    async def find_by_name(self, name: str, guard: str | None = None) -> RoleResult | None:
        role = await self._role_repo.get_by_name(name, self._resolve_guard(guard))
        return self._to_result(role) if role else None

    async def get_role_with_permissions(self, role_id: int) -> RoleResult:
        """Role with the names of the (non-deleted) permissions it holds."""
        role = await self._role_repo.get_with_permissions(role_id, with_deleted=True)
        if role is None:
            raise ResourceNotFoundException("role", role_id)
        return self._to_result(
            role, [p.name for p in role.permissions if p.deleted_at is None]
        )

    async def create(
        self,
        name: str,
        guard: str | None = None,
        *,
        label: Any = None,
        description: Any = None,
        status: RolePermissionStatus | str = RolePermissionStatus.ACTIVE,
    ) -> RoleResult:
        """Create a role in the current tenant context.

        Raises:
            ValidationException: If the name is malformed or already used in
                this guard and tenant.
            InvalidGuardException: If guard is not configured.
        """
        guard = self._resolve_guard(guard)
        name = validate_role_name(name)
        stored_status = parse_status(status)
        await self._ensure_unique(name, guard, self._role_repo.new_row_tenant())
        async with self._transaction("create_role") as uow:
            role = await self._role_repo.create_role(
                name=name,
                guard_name=guard,
                label=label,
                description=description,
                status=stored_status.value,
            )
            self._after_commit(
                uow,
                RoleCreated(
                    role_id=role.id,
                    role_name=role.name,
                    guard_name=role.guard_name,
                    actor_id=get_current_actor_id(),
                ),
            )
        logger.info("Created role %s (%s)", role.name, guard)
        return self._to_result(role)

    async def update(
        self,
        role_id: int,
        *,
        name: str | None = None,
        label: Any = UNSET,
        description: Any = UNSET,
        status: RolePermissionStatus | str | None = None,
    ) -> RoleResult:
        """Update the given fields of a role; omitted fields are left unchanged."""
        role = await self._get(role_id)
        changes: dict[str, Any] = {}
        if name is not None:
            name = validate_role_name(name)
            if name != role.name:
                await self._ensure_unique(name, role.guard_name, role.tenant_id, exclude_id=role.id)
                changes["name"] = name
        if label is not UNSET and label != role.label:
            changes["label"] = label
        if description is not UNSET and description != role.description:
            changes["description"] = description
        if status is not None:
            new_status = parse_status(status)
            if new_status is not role.status:
                changes["status"] = new_status.value
        if not changes:
            return self._to_result(role)

        async with self._transaction("update_role") as uow:
            for field, value in changes.items():
                setattr(role, field, value)
            role = await self._role_repo.update(role)
            self._after_commit(
                uow,
                RoleUpdated(
                    role_id=role.id,
                    role_name=role.name,
                    guard_name=role.guard_name,
                    changes=changes,
                    actor_id=get_current_actor_id(),
                ),
            )
        return self._to_result(role)

    async def delete(self, role_id: int) -> RoleResult:
        """Soft delete; permissions stay attached so restore brings them back."""
        role = await self._get(role_id)
        async with self._transaction("delete_role") as uow:
            role = await self._role_repo.soft_delete(role)
            self._after_commit(uow, self._deleted_event(role, forced=False))
        return self._to_result(role)

    async def restore(self, role_id: int) -> RoleResult:
        """Raises ValidationException if the role is not deleted, or its name is taken again."""
        role = await self._get(role_id, with_deleted=True)
        if role.deleted_at is None:
            raise ValidationException(f"Role '{role.name}' is not deleted", "id")
        await self._ensure_unique(role.name, role.guard_name, role.tenant_id, exclude_id=role.id)
        async with self._transaction("restore_role") as uow:
            role = await self._role_repo.restore(role)
            self._after_commit(
                uow,
                RoleUpdated(
                    role_id=role.id,
                    role_name=role.name,
                    guard_name=role.guard_name,
                    changes={"deleted_at": None},
                    actor_id=get_current_actor_id(),
                ),
            )
        return self._to_result(role)

    async def force_delete(self, role_id: int) -> None:
        """Permanently delete a role (deleted or not) and its permission links."""
        role = await self._get(role_id, with_deleted=True)
        event = self._deleted_event(role, forced=True)
        async with self._transaction("force_delete_role") as uow:
            await self._role_permission_repo.detach_all_permissions(role.id)
            await self._role_repo.delete(role)
            self._after_commit(uow, event)

    async def change_status(self, role_id: int, status: RolePermissionStatus | str) -> RoleResult:
        return await self.update(role_id, status=status)

    async def activate(self, role_id: int) -> RoleResult:
        return await self.change_status(role_id, RolePermissionStatus.ACTIVE)

    async def deactivate(self, role_id: int) -> RoleResult:
        return await self.change_status(role_id, RolePermissionStatus.INACTIVE)

    async def bulk_delete(self, ids: list[int]) -> BulkOperationResult:
        return await run_bulk(ids, self.delete, "delete_role")

    async def bulk_restore(self, ids: list[int]) -> BulkOperationResult:
        return await run_bulk(ids, self.restore, "restore_role")

    async def bulk_force_delete(self, ids: list[int]) -> BulkOperationResult:
        return await run_bulk(ids, self.force_delete, "force_delete_role")

    async def bulk_change_status(
        self, ids: list[int], status: RolePermissionStatus | str
    ) -> BulkOperationResult:
        parse_status(status)
        return await run_bulk(
            ids, lambda role_id: self.change_status(role_id, status), "change_role_status"
        )

    async def clone_with_permissions(
        self,
        role_id: int,
        name: str,
        *,
        label: Any = UNSET,
        description: Any = UNSET,
    ) -> RoleResult:
        """Create a new role named name holding the same permissions as role_id.

        Label and description are copied from the source unless given.
        """
        source = await self._get(role_id)
        name = validate_role_name(name)
        await self._ensure_unique(name, source.guard_name, self._role_repo.new_row_tenant())
        async with self._transaction("clone_role") as uow:
            clone = await self._role_repo.create_role(
                name=name,
                guard_name=source.guard_name,
                label=source.label if label is UNSET else label,
                description=source.description if description is UNSET else description,
                status=source.stored_status,
            )
            await self._role_permission_repo.copy(source.id, clone.id)
            held = await self._role_permission_repo.permission_names_for_role(clone.id)
            actor_id = get_current_actor_id()
            events: list[Any] = [
                RoleCreated(
                    role_id=clone.id,
                    role_name=clone.name,
                    guard_name=clone.guard_name,
                    actor_id=actor_id,
                )
            ]
            if held:
                events.append(
                    PermissionsChangedForRole(
                        role_id=clone.id,
                        role_name=clone.name,
                        guard_name=clone.guard_name,
                        tenant_id=clone.tenant_id,
                        permission_ids=tuple(held.values()),
                        permission_names=tuple(held),
                        actor_id=actor_id,
                    )
                )
            self._after_commit(uow, *events)
        return self._to_result(clone, list(held))

    async def stats(self, guard: str | None = None) -> RoleStats:
        """Counts by status plus roles with/without permissions (cached)."""
        guard = self._resolve_guard(guard)

        async def compute() -> RoleStats:
            counts = await self._role_repo.count_by_status(guard)
            roles = await self._role_repo.list_for_guard(guard)
            held = await self._role_permission_repo.role_counts([role.id for role in roles])
            with_permissions = sum(1 for role in roles if held.get(role.id))
            return {
                "total": counts["total"],
                "active": counts[RolePermissionStatus.ACTIVE.value],
                "inactive": counts[RolePermissionStatus.INACTIVE.value],
                "deleted": counts[RolePermissionStatus.DELETED.value],
                "with_permissions": with_permissions,
                "without_permissions": len(roles) - with_permissions,
            }

        return await self._cache_keys.remember(ROLE_STATS_CACHE_KEY, compute)

    async def recent(self, limit: int = 5, guard: str | None = None) -> list[RoleResult]:
        roles = await self._role_repo.recent(self._resolve_guard(guard), limit)
        return [self._to_result(role) for role in roles]

    async def _get(self, role_id: int, *, with_deleted: bool = False) -> Any:
        role = await self._role_repo.get_by_id(role_id, with_deleted=with_deleted)
        if role is None:
            raise ResourceNotFoundException("role", role_id)
        return role

    async def _ensure_unique(
        self, name: str, guard: str, tenant_id: str | None, *, exclude_id: int | None = None
    ) -> None:
        if await self._role_repo.name_taken(name, guard, tenant_id, exclude_id=exclude_id):
            raise ValidationException(
                f"A role named '{name}' already exists for guard '{guard}'", "name"
            )

    def _resolve_guard(self, guard: str | None) -> str:
        if guard is None:
            return self._guard_resolver.guard()
        return self._guard_resolver.validate(guard)

    def _deleted_event(self, role: Any, *, forced: bool) -> RoleDeleted:
        return RoleDeleted(
            role_id=role.id,
            role_name=role.name,
            guard_name=role.guard_name,
            forced=forced,
            actor_id=get_current_actor_id(),
        )

    def _after_commit(self, uow: IUnitOfWork, *events: Any) -> None:
        """Flush caches and dispatch events once the unit of work has committed."""
        uow.after_commit(self._cache_keys.flush)
        for event in events:
            uow.after_commit(partial(self._events.dispatch, event))

    def _to_result(self, role: Any, permissions: list[str] | None = None) -> RoleResult:
        return RoleResult.from_model(role, self._labels, permissions)
