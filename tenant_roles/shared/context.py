"""Request context management using contextvars.

Provides async-safe storage for request-scoped data: the current actor
(who is mutating roles/permissions, carried on emitted events) and the
current locale (used for label resolution and cache keys).

Usage:
    set_current_user(user_id="user123", actor_type=ActorType.USER)
    set_current_locale("ar")
    locale = get_current_locale()
"""

from contextvars import ContextVar

from tenant_roles.shared.enums import ActorType

_current_user_id: ContextVar[str | None] = ContextVar("current_user_id", default=None)
_current_actor_type: ContextVar[ActorType] = ContextVar(
    "current_actor_type", default=ActorType.SYSTEM
)
_current_locale: ContextVar[str | None] = ContextVar("current_locale", default=None)


def set_current_user(
    user_id: str | None,
    actor_type: ActorType = ActorType.USER,
) -> None:
    """Set the current user context for this request.

    Raises:
        ValueError: If actor_type is USER and user_id is None or empty.
    """
    if actor_type == ActorType.USER and not user_id:
        raise ValueError("user_id is required when actor_type is USER")
    _current_user_id.set(user_id)
    _current_actor_type.set(actor_type)


def clear_current_user() -> None:
    """Clear the current user context."""
    _current_user_id.set(None)
    _current_actor_type.set(ActorType.SYSTEM)


def get_current_actor_id() -> str | None:
    """Return the current user ID, or None if not authenticated."""
    return _current_user_id.get()


def get_current_actor_type() -> ActorType:
    """Return the current actor type (defaults to SYSTEM if not set)."""
    return _current_actor_type.get()


def set_current_locale(locale: str | None) -> None:
    """Set the request locale (None falls back to the configured default)."""
    _current_locale.set(locale)


def get_current_locale() -> str | None:
    """Return the request locale, or None if not set."""
    return _current_locale.get()
