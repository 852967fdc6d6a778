"""Guard resolution: which permission namespace ("web", "api", ...) is active."""

import inspect
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from tenant_roles.core.config import Settings
from tenant_roles.domain.exceptions import InvalidGuardException

T = TypeVar("T")


class GuardResolver:
    """Resolves the active guard: override > package default > framework default."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._override: str | None = None

    def guard(self) -> str:
        if self._override:
            return self._override
        if self._settings.guard:
            return self._settings.guard
        return self.default_guard()

    def default_guard(self) -> str:
        """Ambient framework default guard."""
        return self._settings.auth_default_guard

    def available_guards(self) -> frozenset[str]:
        return frozenset(self._settings.auth_guards)

    def is_valid_guard(self, guard: str) -> bool:
        return guard in self._settings.auth_guards

    def validate(self, guard: str) -> str:
        """Return guard unchanged, or raise InvalidGuardException."""
        if not self.is_valid_guard(guard):
            raise InvalidGuardException(guard, list(self._settings.auth_guards))
        return guard

    def set_guard(self, guard: str) -> None:
        """Override the guard for the rest of this resolver's lifetime.

        Raises:
            InvalidGuardException: If guard is not configured.
        """
        self._override = self.validate(guard)

    def clear_override(self) -> None:
        self._override = None

    @contextmanager
    def override(self, guard: str) -> Iterator[str]:
        """Temporarily switch guard; the previous override is always restored."""
        self.validate(guard)
        previous = self._override
        self._override = guard
        try:
            yield guard
        finally:
            self._override = previous

    async def with_guard(self, guard: str, fn: Callable[[], T | Awaitable[T]]) -> T:
        """Run fn (sync or async) under a temporary guard override.

        The previous override is restored even when fn raises.
        """
        with self.override(guard):
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result
