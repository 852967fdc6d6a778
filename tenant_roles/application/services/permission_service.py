"""Permission application service: listing, lifecycle, grouping and label resolution."""

from __future__ import annotations

from functools import partial
from typing import Any

from tenant_roles.application.dtos.common import BulkOperationResult, ListFilters, Page
from tenant_roles.application.dtos.permission import (
    PermissionGroup,
    PermissionResult,
    PermissionStats,
)
from tenant_roles.application.interfaces.repositories import (
    IPermissionRepository,
    IRolePermissionRepository,
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
    validate_permission_name,
)
from tenant_roles.core.constants import (
    GROUPED_PERMISSIONS_CACHE_KEY,
    PERMISSION_STATS_CACHE_KEY,
    UNGROUPED,
)
from tenant_roles.domain.enums import RolePermissionStatus
from tenant_roles.domain.events import (
    PermissionCreated,
    PermissionDeleted,
    PermissionUpdated,
)
from tenant_roles.domain.exceptions import ResourceNotFoundException, ValidationException
from tenant_roles.shared.context import get_current_actor_id
from tenant_roles.shared.telemetry import get_logger
from tenant_roles.shared.utils.i18n import LabelResolver, humanize_slug

logger = get_logger(__name__)


def group_from_name(name: str) -> str | None:
    """Group slug of a "<group>.<action>" name, None when there is no dot."""
    group, sep, _ = name.partition(".")
    return group if sep and group else None


class PermissionService:
    """Create, update, delete and query permissions of the resolved guard and tenant."""

    def __init__(
        self,
        guard_resolver: IGuardResolver,
        cache_keys: ICacheKeyBuilder,
        permission_repo: IPermissionRepository,
        role_permission_repo: IRolePermissionRepository,
        events: IEventDispatcher,
        transaction: TransactionFactory,
        labels: LabelResolver,
    ) -> None:
        self._guard_resolver = guard_resolver
        self._cache_keys = cache_keys
        self._permission_repo = permission_repo
        self._role_permission_repo = role_permission_repo
        self._events = events
        self._transaction = transaction
        self._labels = labels

    async def list(
        self, filters: ListFilters | None = None, guard: str | None = None
    ) -> Page[PermissionResult]:
        guard = self._resolve_guard(guard)
        page = await self._permission_repo.paginate(guard, filters or ListFilters())
        return Page(
            items=[self._to_result(permission) for permission in page.items],
            total=page.total,
            page=page.page,
            per_page=page.per_page,
        )

    async def find(self, permission_id: int, *, with_deleted: bool = False) -> PermissionResult:
        return self._to_result(await self._get(permission_id, with_deleted=with_deleted))

    async def find_by_name(self, name: str, guard: str | None = None) -> PermissionResult | None:
        permission = await self._permission_repo.get_by_name(name, self._resolve_guard(guard))
        return self._to_result(permission) if permission else None

    async def create(
        self,
        name: str,
        guard: str | None = None,
        *,
        group: str | None = None,
        label: Any = None,
        description: Any = None,
        group_label: Any = None,
        status: RolePermissionStatus | str = RolePermissionStatus.ACTIVE,
    ) -> PermissionResult:
        """Create a permission in the current tenant context.

        group defaults to the part of the name before the first dot.

        Raises:
            ValidationException: If the name is malformed or already used in
                this guard and tenant.
            InvalidGuardException: If guard is not configured.
        """
        guard = self._resolve_guard(guard)
        name = validate_permission_name(name)
        stored_status = parse_status(status)
        await self._ensure_unique(name, guard, self._permission_repo.new_row_tenant())
        async with self._transaction("create_permission") as uow:
            permission = await self._permission_repo.create_permission(
                name=name,
                guard_name=guard,
                group=group or group_from_name(name),
                label=label,
                description=description,
                group_label=group_label,
                status=stored_status.value,
            )
            self._after_commit(
                uow,
                PermissionCreated(
                    permission_id=permission.id,
                    permission_name=permission.name,
                    guard_name=permission.guard_name,
                    actor_id=get_current_actor_id(),
                ),
            )
        logger.info("Created permission %s (%s)", permission.name, guard)
        return self._to_result(permission)

    async def update(
        self,
        permission_id: int,
        *,
        name: str | None = None,
        group: Any = UNSET,
        label: Any = UNSET,
        description: Any = UNSET,
        group_label: Any = UNSET,
        status: RolePermissionStatus | str | None = None,
    ) -> PermissionResult:
        """Update the given fields; omitted fields are left unchanged."""
        permission = await self._get(permission_id)
        changes: dict[str, Any] = {}
        if name is not None:
            name = validate_permission_name(name)
            if name != permission.name:
                await self._ensure_unique(
                    name, permission.guard_name, permission.tenant_id, exclude_id=permission.id
                )
                changes["name"] = name
        for field, value in (
            ("group", group),
            ("label", label),
            ("description", description),
            ("group_label", group_label),
        ):
            if value is not UNSET and value != getattr(permission, field):
                changes[field] = value
        if status is not None:
            new_status = parse_status(status)
            if new_status is not permission.status:
                changes["status"] = new_status.value
        if not changes:
            return self._to_result(permission)

        async with self._transaction("update_permission") as uow:
            for field, value in changes.items():
                setattr(permission, field, value)
            permission = await self._permission_repo.update(permission)
            self._after_commit(
                uow,
                PermissionUpdated(
                    permission_id=permission.id,
                    permission_name=permission.name,
                    guard_name=permission.guard_name,
                    changes=changes,
                    actor_id=get_current_actor_id(),
                ),
            )
        return self._to_result(permission)

    async def delete(self, permission_id: int) -> PermissionResult:
        permission = await self._get(permission_id)
        async with self._transaction("delete_permission") as uow:
            permission = await self._permission_repo.soft_delete(permission)
            self._after_commit(uow, self._deleted_event(permission, forced=False))
        return self._to_result(permission)

    async def restore(self, permission_id: int) -> PermissionResult:
        permission = await self._get(permission_id, with_deleted=True)
        if permission.deleted_at is None:
            raise ValidationException(f"Permission '{permission.name}' is not deleted", "id")
        await self._ensure_unique(
            permission.name, permission.guard_name, permission.tenant_id, exclude_id=permission.id
        )
        async with self._transaction("restore_permission") as uow:
            permission = await self._permission_repo.restore(permission)
            self._after_commit(
                uow,
                PermissionUpdated(
                    permission_id=permission.id,
                    permission_name=permission.name,
                    guard_name=permission.guard_name,
                    changes={"deleted_at": None},
                    actor_id=get_current_actor_id(),
                ),
            )
        return self._to_result(permission)

    async def force_delete(self, permission_id: int) -> None:
        """Permanently delete a permission and detach it from every role."""
        permission = await self._get(permission_id, with_deleted=True)
        event = self._deleted_event(permission, forced=True)
        async with self._transaction("force_delete_permission") as uow:
            await self._role_permission_repo.detach_all_roles(permission.id)
            await self._permission_repo.delete(permission)
            self._after_commit(uow, event)

    async def change_status(
        self, permission_id: int, status: RolePermissionStatus | str
    ) -> PermissionResult:
        return await self.update(permission_id, status=status)

    async def activate(self, permission_id: int) -> PermissionResult:
        return await self.change_status(permission_id, RolePermissionStatus.ACTIVE)

    async def deactivate(self, permission_id: int) -> PermissionResult:
        return await self.change_status(permission_id, RolePermissionStatus.INACTIVE)

    async def bulk_delete(self, ids: list[int]) -> BulkOperationResult:
        return await run_bulk(ids, self.delete, "delete_permission")

    async def bulk_restore(self, ids: list[int]) -> BulkOperationResult:
        return await run_bulk(ids, self.restore, "restore_permission")

    async def bulk_force_delete(self, ids: list[int]) -> BulkOperationResult:
        return await run_bulk(ids, self.force_delete, "force_delete_permission")

    async def bulk_change_status(
        self, ids: list[int], status: RolePermissionStatus | str
    ) -> BulkOperationResult:
        parse_status(status)
        return await run_bulk(
            ids,
            lambda permission_id: self.change_status(permission_id, status),
            "change_permission_status",
        )

    async def grouped_permissions(self, guard: str | None = None) -> dict[str, PermissionGroup]:
        """Non-deleted permissions of guard keyed by group slug (cached).

        Groups and permissions are ordered by slug and name; the group label
        is the resolved group_label of its first permission, else the
        humanized slug.
        """
        guard = self._resolve_guard(guard)

        async def compute() -> dict[str, PermissionGroup]:
            permissions = await self._permission_repo.list_for_matrix(guard)
            groups: dict[str, PermissionGroup] = {}
            for permission in permissions:
                slug = permission.group or UNGROUPED
                if slug not in groups:
                    groups[slug] = {
                        "label": self.resolve_group_label(permission) or humanize_slug(slug),
                        "permissions": [],
                    }
                groups[slug]["permissions"].append(
                    {
                        "id": permission.id,
                        "name": permission.name,
                        "label": self.resolve_label(permission),
                        "description": self.resolve_description(permission),
                        "status": permission.status.value,
                    }
                )
            return groups

        return await self._cache_keys.remember(GROUPED_PERMISSIONS_CACHE_KEY, compute)

    async def stats(self, guard: str | None = None) -> PermissionStats:
        """Counts by status and group, and assigned/unassigned counts (cached)."""
        guard = self._resolve_guard(guard)

        async def compute() -> PermissionStats:
            counts = await self._permission_repo.count_by_status(guard)
            by_group = await self._permission_repo.count_by_group(guard)
            permissions = await self._permission_repo.list_for_guard(guard)
            assigned = await self._role_permission_repo.count_assigned(
                [permission.id for permission in permissions]
            )
            return {
                "total": counts["total"],
                "active": counts[RolePermissionStatus.ACTIVE.value],
                "inactive": counts[RolePermissionStatus.INACTIVE.value],
                "deleted": counts[RolePermissionStatus.DELETED.value],
                "by_group": by_group,
                "assigned": assigned,
                "unassigned": len(permissions) - assigned,
            }

        return await self._cache_keys.remember(PERMISSION_STATS_CACHE_KEY, compute)

    async def recent(self, limit: int = 5, guard: str | None = None) -> list[PermissionResult]:
        permissions = await self._permission_repo.recent(self._resolve_guard(guard), limit)
        return [self._to_result(permission) for permission in permissions]

    def resolve_label(self, permission: Any) -> str | None:
        return self._labels.resolve(permission.label)

    def resolve_description(self, permission: Any) -> str | None:
        return self._labels.resolve(permission.description)

    def resolve_group_label(self, permission: Any) -> str | None:
        return self._labels.resolve(permission.group_label)

    async def _get(self, permission_id: int, *, with_deleted: bool = False) -> Any:
        permission = await self._permission_repo.get_by_id(permission_id, with_deleted=with_deleted)
        if permission is None:
            raise ResourceNotFoundException("permission", permission_id)
        return permission

    async def _ensure_unique(
        self, name: str, guard: str, tenant_id: str | None, *, exclude_id: int | None = None
    ) -> None:
        if await self._permission_repo.name_taken(name, guard, tenant_id, exclude_id=exclude_id):
            raise ValidationException(
                f"A permission named '{name}' already exists for guard '{guard}'", "name"
            )

    def _resolve_guard(self, guard: str | None) -> str:
        if guard is None:
            return self._guard_resolver.guard()
        return self._guard_resolver.validate(guard)

    def _deleted_event(self, permission: Any, *, forced: bool) -> PermissionDeleted:
        return PermissionDeleted(
            permission_id=permission.id,
            permission_name=permission.name,
            guard_name=permission.guard_name,
            forced=forced,
            actor_id=get_current_actor_id(),
        )

    def _after_commit(self, uow: IUnitOfWork, event: Any) -> None:
        """Flush caches and dispatch event once the unit of work has committed."""
        uow.after_commit(self._cache_keys.flush)
        uow.after_commit(partial(self._events.dispatch, event))

    def _to_result(self, permission: Any) -> PermissionResult:
        return PermissionResult.from_model(permission, self._labels)
