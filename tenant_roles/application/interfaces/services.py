"""Service interfaces (ports) for the application layer.

Protocols define contracts for the collaborators the services depend on:
the guard resolver, the contextual cache, the event sink and the unit of
work factory (DIP).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

if TYPE_CHECKING:
    from tenant_roles.domain.events import DomainEvent

T = TypeVar("T")


class IUnitOfWork(Protocol):
    """Protocol for the handle yielded by a unit of work."""

    def after_commit(self, callback: Callable[[], Awaitable[Any]]) -> None:
        """Run callback once the outermost transaction commits; dropped on rollback."""


# atomic(operation) -> async context manager wrapping one all-or-nothing unit of work
TransactionFactory = Callable[[str], AbstractAsyncContextManager[IUnitOfWork]]


class IGuardResolver(Protocol):
    """Protocol for the active guard (permission namespace)."""

    def guard(self) -> str:
        """Return the active guard."""

    def available_guards(self) -> frozenset[str]:
        """Return the configured guards."""

    def validate(self, guard: str) -> str:
        """Return guard or raise InvalidGuardException."""


class ICacheKeyBuilder(Protocol):
    """Protocol for the contextual cache (guard/tenant/locale-aware keys)."""

    def key(self, base_key: str) -> str:
        """Return the full key for base_key in the current context."""

    def ttl(self) -> int:
        """Return the default TTL in seconds."""

    def is_enabled(self) -> bool:
        """Return True if caching is enabled."""

    async def remember(
        self, base_key: str, compute: Callable[[], Awaitable[T]], ttl: int | None = None
    ) -> T:
        """Return the cached value or compute and store it."""

    async def has(self, base_key: str) -> bool:
        """Return True if base_key is cached."""

    async def forget(self, base_key: str) -> bool:
        """Remove base_key for the current context."""

    async def flush(self) -> None:
        """Evict package entries (best-effort)."""

    async def flush_all(self) -> None:
        """Evict package entries across guards and locales (best-effort)."""


class IEventDispatcher(Protocol):
    """Protocol for the event sink."""

    async def dispatch(self, event: DomainEvent) -> None:
        """Deliver event to listeners."""
