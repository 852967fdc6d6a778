"""Utility helpers (datetime, i18n, key sanitization)."""

from tenant_roles.shared.utils.datetime import ensure_utc, utc_now
from tenant_roles.shared.utils.i18n import (
    LabelResolver,
    active_locale,
    humanize_slug,
    resolve_localized,
)
from tenant_roles.shared.utils.sanitization import KeySanitizer

__all__ = [
    "KeySanitizer",
    "LabelResolver",
    "active_locale",
    "ensure_utc",
    "humanize_slug",
    "resolve_localized",
    "utc_now",
]
