"""Localized value resolution (labels, descriptions, group labels).

A localized value is either a plain string or a {locale: text} map.
Maps resolve in order: requested locale, fallback locale, first
available value, None.
"""

from collections.abc import Sequence

from tenant_roles.shared.context import get_current_locale

LocalizedValue = str | dict[str, str] | None


def resolve_localized(
    value: LocalizedValue, locale: str | None, fallback: str | None
) -> str | None:
    """Resolve a plain-or-per-locale value for display.

    Args:
        value: Plain string, {locale: text} map, or None.
        locale: Current locale (may be None).
        fallback: Configured fallback locale (may be None).

    Returns:
        The resolved string, or None when nothing is available.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        for candidate in (locale, fallback):
            if candidate and value.get(candidate):
                return value[candidate]
        for text in value.values():
            if text:
                return text
        return None
    return str(value)


def active_locale(enabled: bool, locales: Sequence[str], default: str) -> str:
    """Request locale when i18n is enabled and the locale is configured, else default."""
    if enabled:
        current = get_current_locale()
        if current and current in locales:
            return current
    return default


def humanize_slug(slug: str) -> str:
    """Default group label from a group slug ("user_roles" -> "User roles")."""
    text = slug.replace("_", " ").replace("-", " ").strip()
    return text[:1].upper() + text[1:]


class LabelResolver:
    """Resolves localized values for the request locale (see resolve_localized)."""

    def __init__(
        self,
        default_locale: str,
        fallback_locale: str,
        locales: Sequence[str] = (),
        enabled: bool = False,
    ) -> None:
        self.default_locale = default_locale
        self.fallback_locale = fallback_locale
        self.locales = tuple(locales)
        self.enabled = enabled

    def locale(self) -> str:
        return active_locale(self.enabled, self.locales, self.default_locale)

    def resolve(self, value: LocalizedValue) -> str | None:
        return resolve_localized(value, self.locale(), self.fallback_locale)
