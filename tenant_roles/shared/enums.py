"""Shared enumerations.

Cross-cutting enums used by application and infrastructure (e.g. actor
type on events). Domain-specific enums live in tenant_roles.domain.enums.
"""

from enum import Enum


class ActorType(str, Enum):
    """Actor type for event tracking (who performed the action)."""

    USER = "user"
    SYSTEM = "system"
    EXTERNAL = "external"
