"""Role/permission synchronization: wildcard expansion, diff sync, full replace and config sync.

This service is the only writer of the role_has_permissions association.
Every mutation runs inside one unit of work (TransactionFactory). Once the
transaction commits, caches are flushed and a PermissionsChangedForRole event
is dispatched when a role's permission set actually changed; a rollback
discards both.

Concurrent calls against the same role are last-committed-wins: diff_sync
applies its delta against the snapshot it read, and no version counter is
kept on the role's permission set.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any

from tenant_roles.application.dtos.role import RoleResult
from tenant_roles.application.dtos.sync import (
    DiffResult,
    PrunedPermission,
    PruneError,
    SkippedPermission,
    SyncedRole,
    SyncError,
    SyncResult,
)
from tenant_roles.application.interfaces.repositories import (
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
from tenant_roles.core.constants import WILDCARD_ALL, WILDCARD_GROUP_SUFFIX
from tenant_roles.domain.enums import PruneMethod, SkipReason
from tenant_roles.domain.events import PermissionsChangedForRole
from tenant_roles.domain.exceptions import (
    ResourceNotFoundException,
    RolesException,
    ValidationException,
)
from tenant_roles.shared.context import get_current_actor_id
from tenant_roles.shared.telemetry import add_span_attributes, get_logger, traced
from tenant_roles.shared.utils.i18n import LabelResolver

if TYPE_CHECKING:
    from tenant_roles.core.config import Settings

logger = get_logger(__name__)


def validate_pattern(pattern: str) -> str:
    """Return pattern if it is "*", "<group>.*" or a literal name.

    Raises:
        ValidationException: If pattern is empty or "*" appears anywhere else.
    """
    if not isinstance(pattern, str) or not pattern.strip():
        raise ValidationException("Permission pattern must be a non-empty string", "patterns")
    if pattern == WILDCARD_ALL:
        return pattern
    if pattern.endswith(WILDCARD_GROUP_SUFFIX):
        group = pattern[: -len(WILDCARD_GROUP_SUFFIX)]
        if group and WILDCARD_ALL not in group:
            return pattern
    elif WILDCARD_ALL not in pattern:
        return pattern
    raise ValidationException(
        f"Invalid permission pattern {pattern!r}: '*' is only allowed as '*' or '<group>.*'",
        "patterns",
    )


def matches_pattern(pattern: str, permission_name: str) -> bool:
    """True if permission_name is denoted by pattern.

    "*" matches everything; "<group>.*" matches names starting with "<group>.";
    anything else is compared for equality.
    """
    if pattern == WILDCARD_ALL:
        return True
    if pattern.endswith(WILDCARD_GROUP_SUFFIX):
        return permission_name.startswith(pattern[:-1])
    return pattern == permission_name


class RolePermissionSyncService:
    """Grant, revoke and replace the permissions held by roles."""

    def __init__(
        self,
        settings: Settings,
        guard_resolver: IGuardResolver,
        cache_keys: ICacheKeyBuilder,
        role_repo: IRoleRepository,
        permission_repo: IPermissionRepository,
        role_permission_repo: IRolePermissionRepository,
        events: IEventDispatcher,
        transaction: TransactionFactory,
        labels: LabelResolver | None = None,
    ) -> None:
        self._settings = settings
        self._guard_resolver = guard_resolver
        self._cache_keys = cache_keys
        self._role_repo = role_repo
        self._permission_repo = permission_repo
        self._role_permission_repo = role_permission_repo
        self._events = events
        self._transaction = transaction
        self._labels = labels

    matches_pattern = staticmethod(matches_pattern)

    async def expand_wildcards(self, patterns: list[str], guard: str | None = None) -> list[str]:
        """Expand patterns into the permission names they denote under guard.

        Results are concatenated in pattern order and de-duplicated (first
        occurrence wins). Literal names are returned as given, whether or not
        a permission of that name exists.

        Raises:
            ValidationException: If a pattern is malformed.
        """
        guard = guard or self._guard_resolver.guard()
        names: list[str] = []
        for pattern in patterns:
            validate_pattern(pattern)
            if pattern == WILDCARD_ALL:
                names.extend(await self._permission_repo.names_for_guard(guard))
            elif pattern.endswith(WILDCARD_GROUP_SUFFIX):
                names.extend(
                    await self._permission_repo.names_for_guard(guard, prefix=pattern[:-1])
                )
            else:
                names.append(pattern)
        return list(dict.fromkeys(names))

    @traced("role_permissions.diff_sync")
    async def diff_sync(
        self, role: Any, grant: list[str] | None = None, revoke: list[str] | None = None
    ) -> DiffResult:
        """Grant and revoke a delta of permissions on role.

        Grants are processed before revokes inside one unit of work against a
        snapshot of the names role held before the call. Unknown names are
        skipped with reason not_found, names already held with
        already_granted, and revokes of names not held with not_assigned.
        Caches are flushed, and the change event dispatched, once the unit of
        work has committed.

        Raises:
            ValidationException: If a pattern is malformed.
            TransactionFailureException: If the store fails; nothing is applied.
        """
        guard = role.guard_name
        grant_names = await self.expand_wildcards(grant or [], guard)
        revoke_names = await self.expand_wildcards(revoke or [], guard)
        held = await self._role_permission_repo.permission_names_for_role(role.id)

        granted: list[str] = []
        revoked: list[str] = []
        skipped: list[SkippedPermission] = []

        async with self._transaction("diff_sync") as uow:
            candidates = [name for name in grant_names if name not in held]
            found = await self._permission_repo.get_by_names(candidates, guard)
            for name in grant_names:
                if name in held:
                    skipped.append(
                        {"permission": name, "reason": SkipReason.ALREADY_GRANTED.value}
                    )
                elif name in found:
                    granted.append(name)
                else:
                    skipped.append({"permission": name, "reason": SkipReason.NOT_FOUND.value})
            if granted:
                await self._role_permission_repo.attach(
                    role.id, [found[name].id for name in granted]
                )

            for name in revoke_names:
                if name in held:
                    revoked.append(name)
                else:
                    skipped.append(
                        {"permission": name, "reason": SkipReason.NOT_ASSIGNED.value}
                    )
            if revoked:
                await self._role_permission_repo.detach(
                    role.id, [held[name] for name in revoked]
                )
            await self._after_commit(uow, role if granted or revoked else None)

        add_span_attributes(
            role_id=role.id, granted=len(granted), revoked=len(revoked), skipped=len(skipped)
        )
        logger.info(
            "Diff sync on role %s (%s): %d granted, %d revoked, %d skipped",
            role.name,
            guard,
            len(granted),
            len(revoked),
            len(skipped),
        )
        return {"granted": granted, "revoked": revoked, "skipped": skipped}

    @traced("role_permissions.assign_permissions")
    async def assign_permissions(self, role: Any, permission_ids: list[int]) -> RoleResult:
        """Make role hold exactly permission_ids.

        Ids that are not permissions of the role's guard are dropped from the
        effective set without error.
        """
        effective = await self._permission_repo.filter_ids_for_guard(
            list(dict.fromkeys(permission_ids)), role.guard_name
        )
        async with self._transaction("assign_permissions") as uow:
            attached, detached = await self._role_permission_repo.replace(role.id, effective)
            await self._after_commit(uow, role if attached or detached else None)
        return await self._role_result(role)

    async def add_permission(self, role: Any, permission: int | str) -> RoleResult:
        """Attach one permission (by id or exact name) to role.

        Raises:
            ResourceNotFoundException: If no such permission exists for the role's guard.
        """
        target = await self._resolve_permission(role, permission)
        async with self._transaction("add_permission") as uow:
            attached = await self._role_permission_repo.attach(role.id, [target.id])
            await self._after_commit(uow, role if attached else None)
        return await self._role_result(role)

    async def remove_permission(self, role: Any, permission: int | str) -> RoleResult:
        """Detach one permission (by id or exact name) from role.

        Raises:
            ResourceNotFoundException: If no such permission exists for the role's guard.
        """
        target = await self._resolve_permission(role, permission)
        async with self._transaction("remove_permission") as uow:
            removed = await self._role_permission_repo.detach(role.id, [target.id])
            await self._after_commit(uow, role if removed else None)
        return await self._role_result(role)

    @traced("role_permissions.sync_from_config")
    async def sync_from_config(self, prune: bool = False) -> SyncResult:
        """Replace each seeded role's permissions with its configured patterns.

        Each role is synced in its own unit of work, lookup included: a
        missing role or any failure is recorded in errors and the remaining
        roles still sync. With prune, permissions of the guard that are not
        in the configured catalogue are detached from every role and deleted.
        """
        guard = self._guard_resolver.guard()
        synced: list[SyncedRole] = []
        errors: list[SyncError] = []

        for role_name, patterns in self._settings.seed_map.items():
            try:
                entry = await self._sync_role(role_name, patterns, guard)
            except RolesException as e:
                logger.warning("Failed to sync role %s: %s", role_name, e.message, exc_info=True)
                errors.append({"role": role_name, "error": e.message})
                continue
            if entry is None:
                errors.append({"role": role_name, "error": f"Role '{role_name}' not found"})
                logger.warning("Seed map role %s not found for guard %s", role_name, guard)
                continue
            synced.append(entry)

        result: SyncResult = {"synced": synced, "errors": errors}
        if prune:
            pruned, prune_errors = await self._prune(guard)
            result["pruned"] = pruned
            result["prune_errors"] = prune_errors

        add_span_attributes(guard=guard, synced=len(synced), errors=len(errors))
        logger.info(
            "Synced %d roles from config for guard %s (%d errors)", len(synced), guard, len(errors)
        )
        return result

    async def _sync_role(self, role_name: str, patterns: list[str], guard: str) -> SyncedRole | None:
        """Replace one seeded role's permissions. Returns None if the role does not exist."""
        async with self._transaction(f"sync_from_config:{role_name}") as uow:
            role = await self._role_repo.get_by_name(role_name, guard)
            if role is None:
                return None
            names = await self.expand_wildcards(patterns, guard)
            found = await self._permission_repo.get_by_names(names, guard)
            permissions = [found[name] for name in names if name in found]
            await self._role_permission_repo.replace(
                role.id, [permission.id for permission in permissions]
            )
            await self._after_commit(uow)
        return {
            "role": role_name,
            "permissions_count": len(permissions),
            "permissions": [permission.name for permission in permissions],
        }

    async def _prune(self, guard: str) -> tuple[list[PrunedPermission], list[PruneError]]:
        """Delete permissions of guard that are not in the configured catalogue.

        Each permission is detached from every role, then deleted with the
        first strategy that succeeds: relation-aware delete, soft delete,
        row delete.
        """
        catalogue = set(self._settings.configured_permission_names())
        pruned: list[PrunedPermission] = []
        prune_errors: list[PruneError] = []
        strategies = (
            (PruneMethod.DELETE, self._delete_permission),
            (PruneMethod.SOFT_DELETE, self._soft_delete_permission),
            (PruneMethod.ROW_DELETE, self._permission_repo.delete_row),
        )

        for permission in await self._permission_repo.list_for_guard(guard):
            if permission.name in catalogue:
                continue
            name, permission_id = permission.name, permission.id
            last_error: RolesException | None = None
            for method, strategy in strategies:
                try:
                    async with self._transaction(f"prune:{name}:{method.value}") as uow:
                        await self._role_permission_repo.detach_all_roles(permission_id)
                        await strategy(permission_id)
                        await self._after_commit(uow)
                except RolesException as e:
                    logger.warning("Prune of %s by %s failed: %s", name, method.value, e.message)
                    last_error = e
                    continue
                pruned.append({"permission": name, "method": method.value})
                logger.info("Pruned permission %s (%s)", name, method.value)
                break
            else:
                reason = last_error.message if last_error else "unknown error"
                prune_errors.append({"permission": name, "error": reason})
        return pruned, prune_errors

    async def _delete_permission(self, permission_id: int) -> None:
        permission = await self._permission_repo.get_by_id(permission_id, with_deleted=True)
        if permission is not None:
            await self._permission_repo.delete(permission)

    async def _soft_delete_permission(self, permission_id: int) -> None:
        permission = await self._permission_repo.get_by_id(permission_id, with_deleted=True)
        if permission is not None:
            await self._permission_repo.soft_delete(permission)

    async def _resolve_permission(self, role: Any, permission: int | str) -> Any:
        if isinstance(permission, int):
            found = await self._permission_repo.get_by_id(permission)
            if found is not None and found.guard_name != role.guard_name:
                found = None
        else:
            found = await self._permission_repo.get_by_name(permission, role.guard_name)
        if found is None:
            raise ResourceNotFoundException("permission", str(permission))
        return found

    async def _role_result(self, role: Any) -> RoleResult:
        fresh = await self._role_repo.get_with_permissions(role.id, with_deleted=True)
        if fresh is None:
            raise ResourceNotFoundException("role", str(role.id))
        return RoleResult.from_model(
            fresh, self._labels, [p.name for p in fresh.permissions if p.deleted_at is None]
        )

    async def _after_commit(self, uow: IUnitOfWork, role: Any = None) -> None:
        """Queue the cache flush and, for a changed role, its PermissionsChangedForRole event."""
        uow.after_commit(self._cache_keys.flush)
        if role is None:
            return
        held = await self._role_permission_repo.permission_names_for_role(role.id)
        event = PermissionsChangedForRole(
            role_id=role.id,
            role_name=role.name,
            guard_name=role.guard_name,
            tenant_id=role.tenant_id,
            permission_ids=tuple(held.values()),
            permission_names=tuple(held),
            actor_id=get_current_actor_id(),
        )
        uow.after_commit(partial(self._events.dispatch, event))
