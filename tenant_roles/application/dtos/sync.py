"""Results of role/permission synchronization."""

from typing import NotRequired, TypedDict


class SkippedPermission(TypedDict):
    permission: str
    reason: str


class DiffResult(TypedDict):
    """Outcome of a grant/revoke delta; skipped entries are not errors."""

    granted: list[str]
    revoked: list[str]
    skipped: list[SkippedPermission]


class SyncedRole(TypedDict):
    role: str
    permissions_count: int
    permissions: list[str]


class SyncError(TypedDict):
    role: str
    error: str


class PrunedPermission(TypedDict):
    permission: str
    method: str


class PruneError(TypedDict):
    permission: str
    error: str


class SyncResult(TypedDict):
    """Outcome of sync_from_config; pruned/prune_errors only when pruning."""

    synced: list[SyncedRole]
    errors: list[SyncError]
    pruned: NotRequired[list[PrunedPermission]]
    prune_errors: NotRequired[list[PruneError]]
