"""Facade over the matrix and sync services, addressing roles by id."""

from __future__ import annotations

from typing import Any

from tenant_roles.application.dtos.matrix import GroupedMatrixResult, MatrixResult
from tenant_roles.application.dtos.role import RoleResult
from tenant_roles.application.dtos.sync import DiffResult, SyncResult
from tenant_roles.application.interfaces.repositories import IRoleRepository
from tenant_roles.application.services.permission_matrix_service import (
    PermissionMatrixService,
)
from tenant_roles.application.services.role_permission_sync_service import (
    RolePermissionSyncService,
)
from tenant_roles.domain.exceptions import ResourceNotFoundException


class RolesManager:
    """Entry point for hosts: matrix reads and permission sync by role id."""

    def __init__(
        self,
        role_repo: IRoleRepository,
        matrix_service: PermissionMatrixService,
        sync_service: RolePermissionSyncService,
    ) -> None:
        self._role_repo = role_repo
        self.matrix = matrix_service
        self.sync = sync_service

    async def build_matrix(self, guard: str | None = None) -> MatrixResult:
        if guard is None:
            return await self.matrix.build()
        return await self.matrix.for_guard(guard)

    async def build_grouped_matrix(self) -> GroupedMatrixResult:
        return await self.matrix.build_grouped()

    async def diff_sync(
        self, role_id: int, grant: list[str] | None = None, revoke: list[str] | None = None
    ) -> DiffResult:
        return await self.sync.diff_sync(await self._role(role_id), grant, revoke)

    async def assign_permissions(self, role_id: int, permission_ids: list[int]) -> RoleResult:
        return await self.sync.assign_permissions(await self._role(role_id), permission_ids)

    async def add_permission(self, role_id: int, permission: int | str) -> RoleResult:
        return await self.sync.add_permission(await self._role(role_id), permission)

    async def remove_permission(self, role_id: int, permission: int | str) -> RoleResult:
        return await self.sync.remove_permission(await self._role(role_id), permission)

    async def sync_from_config(self, prune: bool = False) -> SyncResult:
        return await self.sync.sync_from_config(prune)

    async def invalidate_matrix_cache(self) -> None:
        await self.matrix.invalidate()

    async def _role(self, role_id: int) -> Any:
        role = await self._role_repo.get_by_id(role_id)
        if role is None:
            raise ResourceNotFoundException("role", role_id)
        return role
