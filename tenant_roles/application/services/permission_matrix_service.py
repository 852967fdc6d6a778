"""Permission matrix: every role of a guard against every permission of that guard.

A matrix is built from exactly two store fetches (roles joined with their
permission ids, then permissions ordered by group and name); every cell is
answered from an in-memory set, never by a per-cell query. Results are
cached per guard, tenant scope and locale.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from tenant_roles.application.dtos.matrix import (
    GroupedMatrixResult,
    MatrixCacheStats,
    MatrixGroup,
    MatrixResult,
    MatrixRow,
    MatrixRole,
    RoleCell,
    RolePermissionRef,
    RoleRef,
)
from tenant_roles.application.interfaces.repositories import (
    IPermissionRepository,
    IRoleRepository,
)
from tenant_roles.application.interfaces.services import ICacheKeyBuilder, IGuardResolver
from tenant_roles.core.constants import (
    GROUPED_MATRIX_CACHE_KEY,
    MATRIX_CACHE_KEY,
    UNGROUPED,
    guard_matrix_key,
)
from tenant_roles.shared.telemetry import add_span_attributes, get_logger, traced
from tenant_roles.shared.utils.i18n import LabelResolver, humanize_slug

logger = get_logger(__name__)


class PermissionMatrixService:
    """Builds, caches and queries the Role x Permission matrix."""

    def __init__(
        self,
        guard_resolver: IGuardResolver,
        cache_keys: ICacheKeyBuilder,
        role_repo: IRoleRepository,
        permission_repo: IPermissionRepository,
        labels: LabelResolver,
    ) -> None:
        self._guard_resolver = guard_resolver
        self._cache_keys = cache_keys
        self._role_repo = role_repo
        self._permission_repo = permission_repo
        self._labels = labels

    @traced("permission_matrix.build")
    async def build(self) -> MatrixResult:
        """Matrix for the resolved guard (cached under "permission_matrix")."""
        guard = self._guard_resolver.guard()
        return await self._cache_keys.remember(
            MATRIX_CACHE_KEY, lambda: self._build_matrix(guard)
        )

    @traced("permission_matrix.for_guard")
    async def for_guard(self, guard: str) -> MatrixResult:
        """Matrix for an explicit guard (cached under "permission_matrix:<guard>").

        Raises:
            InvalidGuardException: If guard is not configured.
        """
        self._guard_resolver.validate(guard)
        return await self._cache_keys.remember(
            guard_matrix_key(guard), lambda: self._build_matrix(guard)
        )

    @traced("permission_matrix.build_grouped")
    async def build_grouped(self) -> GroupedMatrixResult:
        """Matrix for the resolved guard with permissions grouped by their group slug."""
        guard = self._guard_resolver.guard()
        return await self._cache_keys.remember(
            GROUPED_MATRIX_CACHE_KEY, lambda: self._build_grouped_matrix(guard)
        )

    async def permissions_for_role(self, role_id: int) -> list[RolePermissionRef]:
        """Permissions held by role_id, read from the matrix."""
        matrix = await self.build()
        held: list[RolePermissionRef] = []
        for row in matrix["matrix"]:
            for cell in row["roles"].values():
                if cell["role_id"] == role_id and cell["has_permission"]:
                    held.append(
                        {
                            "permission_id": row["permission_id"],
                            "permission_name": row["permission_name"],
                        }
                    )
        return held

    async def roles_with_permission(self, permission_id: int) -> list[RoleRef]:
        """Roles holding permission_id, read from the matrix."""
        matrix = await self.build()
        for row in matrix["matrix"]:
            if row["permission_id"] == permission_id:
                return [
                    {"id": cell["role_id"], "name": role_name}
                    for role_name, cell in row["roles"].items()
                    if cell["has_permission"]
                ]
        return []

    async def invalidate(self) -> None:
        """Forget the matrix, the grouped matrix and every per-guard matrix."""
        await self._cache_keys.forget(MATRIX_CACHE_KEY)
        await self._cache_keys.forget(GROUPED_MATRIX_CACHE_KEY)
        for guard in sorted(self._guard_resolver.available_guards()):
            await self._cache_keys.forget(guard_matrix_key(guard))

    async def cache_stats(self) -> MatrixCacheStats:
        """Introspection of the matrix cache entry for the current context."""
        return {
            "cache_enabled": self._cache_keys.is_enabled(),
            "cache_key": self._cache_keys.key(MATRIX_CACHE_KEY),
            "ttl": self._cache_keys.ttl(),
            "is_cached": await self._cache_keys.has(MATRIX_CACHE_KEY),
        }

    async def _fetch(self, guard: str) -> tuple[list[Any], list[Any], dict[int, set[int]]]:
        """Two fetches: roles with permission ids, then permissions."""
        pairs = await self._role_repo.list_with_permission_ids(guard)
        permissions = await self._permission_repo.list_for_matrix(guard)

        roles: dict[int, Any] = {}
        held: dict[int, set[int]] = defaultdict(set)
        for role, permission_id in pairs:
            roles.setdefault(role.id, role)
            if permission_id is not None:
                held[role.id].add(permission_id)
        add_span_attributes(
            guard=guard, role_count=len(roles), permission_count=len(permissions)
        )
        return list(roles.values()), permissions, held

    def _role_entries(self, roles: list[Any]) -> list[MatrixRole]:
        return [
            {"id": role.id, "name": role.name, "label": self._labels.resolve(role.label)}
            for role in roles
        ]

    @staticmethod
    def _cells(roles: list[Any], held: dict[int, set[int]], permission_id: int) -> dict[str, RoleCell]:
        return {
            role.name: {
                "role_id": role.id,
                "has_permission": permission_id in held.get(role.id, ()),
            }
            for role in roles
        }

    async def _build_matrix(self, guard: str) -> MatrixResult:
        roles, permissions, held = await self._fetch(guard)
        rows: list[MatrixRow] = []
        for permission in permissions:
            rows.append(
                {
                    "permission_id": permission.id,
                    "permission_name": permission.name,
                    "permission_label": self._labels.resolve(permission.label),
                    "permission_group": permission.group,
                    "roles": self._cells(roles, held, permission.id),
                }
            )
        logger.debug(
            "Built permission matrix for guard %s: %d roles x %d permissions",
            guard,
            len(roles),
            len(permissions),
        )
        return {
            "roles": self._role_entries(roles),
            "permissions": [
                {
                    "id": permission.id,
                    "name": permission.name,
                    "label": self._labels.resolve(permission.label),
                    "group": permission.group,
                }
                for permission in permissions
            ],
            "matrix": rows,
        }

    async def _build_grouped_matrix(self, guard: str) -> GroupedMatrixResult:
        roles, permissions, held = await self._fetch(guard)
        groups: dict[str, MatrixGroup] = {}
        for permission in permissions:
            group_name = permission.group or UNGROUPED
            if group_name not in groups:
                groups[group_name] = {
                    "label": self._labels.resolve(permission.group_label)
                    or humanize_slug(group_name),
                    "permissions": [],
                }
            groups[group_name]["permissions"].append(
                {
                    "id": permission.id,
                    "name": permission.name,
                    "label": self._labels.resolve(permission.label),
                    "roles": self._cells(roles, held, permission.id),
                }
            )
        return {"roles": self._role_entries(roles), "groups": groups}
