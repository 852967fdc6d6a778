"""Persistence: SQLAlchemy async engine, models and repositories."""

from tenant_roles.infrastructure.persistence.database import (
    Base,
    get_db,
    get_db_transactional,
)

__all__ = ["Base", "get_db", "get_db_transactional"]
