"""Seed the configured role and permission catalogue (create-if-missing)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tenant_roles.application.interfaces.repositories import (
    IPermissionRepository,
    IRoleRepository,
)
from tenant_roles.application.interfaces.services import (
    ICacheKeyBuilder,
    IGuardResolver,
    TransactionFactory,
)
from tenant_roles.application.services.common import validate_permission_name
from tenant_roles.shared.telemetry import get_logger, traced

if TYPE_CHECKING:
    from tenant_roles.application.services.role_permission_sync_service import (
        RolePermissionSyncService,
    )
    from tenant_roles.core.config import Settings

logger = get_logger(__name__)


class CatalogueSeeder:
    """Creates the configured roles and permissions for a guard.

    Existing rows are never overwritten by sync_roles/sync_permissions;
    update_labels_and_descriptions refreshes their configured texts.
    """

    def __init__(
        self,
        settings: Settings,
        guard_resolver: IGuardResolver,
        cache_keys: ICacheKeyBuilder,
        role_repo: IRoleRepository,
        permission_repo: IPermissionRepository,
        sync_service: RolePermissionSyncService,
        transaction: TransactionFactory,
    ) -> None:
        self._settings = settings
        self._guard_resolver = guard_resolver
        self._cache_keys = cache_keys
        self._role_repo = role_repo
        self._permission_repo = permission_repo
        self._sync_service = sync_service
        self._transaction = transaction

    def configured_permission_names(self) -> list[str]:
        return self._settings.configured_permission_names()

    @traced("catalogue.sync_roles")
    async def sync_roles(self, guard: str | None = None) -> list[str]:
        """Create missing seed roles for guard. Returns the names created."""
        guard = self._resolve_guard(guard)
        descriptions = self._settings.seed_role_descriptions
        names = self._settings.all_seed_roles()
        existing = await self._role_repo.get_by_names(names, guard)
        created: list[str] = []
        async with self._transaction("seed_roles") as uow:
            for name in names:
                if name in existing:
                    continue
                await self._role_repo.create_role(
                    name=name, guard_name=guard, description=descriptions.get(name)
                )
                created.append(name)
            if created:
                uow.after_commit(self._cache_keys.flush)
        if created:
            logger.info("Seeded %d roles for guard %s: %s", len(created), guard, ", ".join(created))
        return created

    @traced("catalogue.sync_permissions")
    async def sync_permissions(self, guard: str | None = None) -> list[str]:
        """Create missing catalogue permissions for guard. Returns the names created."""
        guard = self._resolve_guard(guard)
        catalogue = self._catalogue()
        existing = await self._permission_repo.get_by_names(list(catalogue), guard)
        created: list[str] = []
        async with self._transaction("seed_permissions") as uow:
            for name, group in catalogue.items():
                if name in existing:
                    continue
                await self._permission_repo.create_permission(
                    name=name, guard_name=guard, group=group, **self._permission_texts(name, group)
                )
                created.append(name)
            if created:
                uow.after_commit(self._cache_keys.flush)
        if created:
            logger.info("Seeded %d permissions for guard %s", len(created), guard)
        return created

    async def update_labels_and_descriptions(self, guard: str | None = None) -> int:
        """Apply configured labels/descriptions to existing seed rows. Returns rows changed."""
        guard = self._resolve_guard(guard)
        changed = 0
        role_descriptions = self._settings.seed_role_descriptions
        roles = await self._role_repo.get_by_names(list(role_descriptions), guard)
        catalogue = self._catalogue()
        permissions = await self._permission_repo.get_by_names(list(catalogue), guard)

        async with self._transaction("refresh_catalogue_texts") as uow:
            for name, role in roles.items():
                if self._apply(role, {"description": role_descriptions[name]}):
                    await self._role_repo.update(role)
                    changed += 1
            for name, permission in permissions.items():
                if self._apply(permission, self._permission_texts(name, catalogue[name])):
                    await self._permission_repo.update(permission)
                    changed += 1
            if changed:
                uow.after_commit(self._cache_keys.flush)
        return changed

    async def preview_mapping(self, guard: str | None = None) -> dict[str, list[str]]:
        """Role -> permission names the seed map would assign (no writes)."""
        guard = self._resolve_guard(guard)
        preview: dict[str, list[str]] = {}
        for role_name, patterns in self._settings.seed_map.items():
            names = await self._sync_service.expand_wildcards(patterns, guard)
            found = await self._permission_repo.get_by_names(names, guard)
            preview[role_name] = [name for name in names if name in found]
        return preview

    def _catalogue(self) -> dict[str, str]:
        """{permission name: group} from the configured permission groups."""
        catalogue: dict[str, str] = {}
        for group, actions in self._settings.seed_permission_groups.items():
            for action in actions:
                name = validate_permission_name(f"{group}.{action}")
                catalogue.setdefault(name, group)
        return catalogue

    def _permission_texts(self, name: str, group: str) -> dict[str, Any]:
        texts: dict[str, Any] = {}
        if name in self._settings.seed_permission_labels:
            texts["label"] = self._settings.seed_permission_labels[name]
        if name in self._settings.seed_permission_descriptions:
            texts["description"] = self._settings.seed_permission_descriptions[name]
        if group in self._settings.seed_permission_group_labels:
            texts["group_label"] = self._settings.seed_permission_group_labels[group]
        return texts

    @staticmethod
    def _apply(entity: Any, values: dict[str, Any]) -> bool:
        changed = False
        for field, value in values.items():
            if getattr(entity, field) != value:
                setattr(entity, field, value)
                changed = True
        return changed

    def _resolve_guard(self, guard: str | None) -> str:
        if guard is None:
            return self._guard_resolver.guard()
        return self._guard_resolver.validate(guard)
