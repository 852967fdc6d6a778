"""Role ORM model. A named permission bundle scoped to one guard."""

from typing import Any

from sqlalchemy import JSON, Index, Integer, String, text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from tenant_roles.core.config import get_settings
from tenant_roles.infrastructure.persistence.database import Base
from tenant_roles.infrastructure.persistence.models.mixins import (
    SoftDeleteMixin,
    StatusMixin,
    TenantScopedMixin,
    TimestampMixin,
)
from tenant_roles.infrastructure.persistence.models.permission import (
    Permission,
    role_has_permissions,
)


class Role(TimestampMixin, SoftDeleteMixin, TenantScopedMixin, StatusMixin, Base):
    """Role. Table: roles. Unique (name, guard_name, tenant) among non-deleted rows."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    guard_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    label: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    description: Mapped[Any | None] = mapped_column(JSON, nullable=True)

    # Read-only view; association writes go through RolePermissionRepository.
    permissions: Mapped[list[Permission]] = relationship(
        secondary=role_has_permissions,
        viewonly=True,
        order_by=Permission.name,
        lazy="raise",
    )

    @declared_attr.directive
    def __table_args__(cls) -> tuple:
        return (
            Index(
                "uq_roles_name_guard_tenant",
                "name",
                "guard_name",
                get_settings().team_foreign_key,
                unique=True,
                postgresql_where=text("deleted_at IS NULL"),
                sqlite_where=text("deleted_at IS NULL"),
            ),
        )

    def __repr__(self) -> str:
        return f"Role(id={self.id!r}, name={self.name!r}, guard={self.guard_name!r})"
