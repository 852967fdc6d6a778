"""Sanitization helpers for identifiers used in cache keys and scopes."""

import re
from typing import ClassVar


class KeySanitizer:
    """Make arbitrary identifiers safe for use as cache key components."""

    UNSAFE_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9_-]")
    IDENTIFIER_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_-]+$")

    @classmethod
    def sanitize(cls, value: object) -> str:
        """Replace every character outside [A-Za-z0-9_-] with an underscore.

        Args:
            value: Identifier (str, int, UUID, ...).

        Returns:
            Cache-safe string.
        """
        return cls.UNSAFE_PATTERN.sub("_", str(value))

    @classmethod
    def is_safe(cls, value: str) -> bool:
        """Return True if value only contains [A-Za-z0-9_-]."""
        return bool(value) and bool(cls.IDENTIFIER_PATTERN.fullmatch(value))
