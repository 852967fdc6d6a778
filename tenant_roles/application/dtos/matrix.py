"""Permission matrix shapes (JSON-serialisable so they can be cached as-is)."""

from typing import TypedDict


class MatrixRole(TypedDict):
    id: int
    name: str
    label: str | None


class MatrixPermission(TypedDict):
    id: int
    name: str
    label: str | None
    group: str | None


class RoleCell(TypedDict):
    role_id: int
    has_permission: bool


class MatrixRow(TypedDict):
    """One permission with a {role_name: cell} map."""

    permission_id: int
    permission_name: str
    permission_label: str | None
    permission_group: str | None
    roles: dict[str, RoleCell]


class MatrixResult(TypedDict):
    roles: list[MatrixRole]
    permissions: list[MatrixPermission]
    matrix: list[MatrixRow]


class GroupedMatrixPermission(TypedDict):
    id: int
    name: str
    label: str | None
    roles: dict[str, RoleCell]


class MatrixGroup(TypedDict):
    label: str
    permissions: list[GroupedMatrixPermission]


class GroupedMatrixResult(TypedDict):
    roles: list[MatrixRole]
    groups: dict[str, MatrixGroup]


class RolePermissionRef(TypedDict):
    permission_id: int
    permission_name: str


class RoleRef(TypedDict):
    id: int
    name: str


class MatrixCacheStats(TypedDict):
    cache_enabled: bool
    cache_key: str
    ttl: int
    is_cached: bool
