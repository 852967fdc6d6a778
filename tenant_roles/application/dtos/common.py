"""Shared DTOs: list filters, pages and bulk operation outcomes."""

from dataclasses import dataclass, field
from typing import Generic, Literal, TypedDict, TypeVar

T = TypeVar("T")

SortDirection = Literal["asc", "desc"]
TenantFilter = Literal["visible", "all", "global", "own"]


@dataclass(frozen=True)
class ListFilters:
    """Filters for role/permission listings.

    status "deleted" implies only_deleted. page is 1-based. tenant selects
    which rows are listed in team_scoped mode: visible (global plus own),
    all, global only, or own only.
    """

    search: str | None = None
    status: str | None = None
    group: str | None = None
    with_deleted: bool = False
    only_deleted: bool = False
    tenant: TenantFilter = "visible"
    sort: str = "id"
    direction: SortDirection = "desc"
    page: int = 1
    per_page: int = 20

    @property
    def offset(self) -> int:
        return (max(self.page, 1) - 1) * self.per_page


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of results plus the unpaginated total."""

    items: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 20

    @property
    def last_page(self) -> int:
        if self.per_page <= 0:
            return 1
        return max(1, -(-self.total // self.per_page))


class BulkFailure(TypedDict):
    id: int
    reason: str


class BulkOperationResult(TypedDict):
    """Per-item outcome of a bulk operation; the batch never aborts."""

    success: list[int]
    failed: list[BulkFailure]
