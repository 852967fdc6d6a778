"""Permission ORM model and the role_has_permissions association table."""

from typing import Any

from sqlalchemy import JSON, Column, ForeignKey, Index, Integer, String, Table, text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from tenant_roles.core.config import get_settings
from tenant_roles.infrastructure.persistence.database import Base
from tenant_roles.infrastructure.persistence.models.mixins import (
    SoftDeleteMixin,
    StatusMixin,
    TenantScopedMixin,
    TimestampMixin,
)

# Pure membership: no attributes beyond the pair, so it is a Table, not a model.
role_has_permissions = Table(
    "role_has_permissions",
    Base.metadata,
    Column(
        "role_id",
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "permission_id",
        Integer,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)


class Permission(TimestampMixin, SoftDeleteMixin, TenantScopedMixin, StatusMixin, Base):
    """Permission. Table: permissions. Name convention "<group>.<action>".

    label, description and group_label hold a plain string or a
    {locale: text} map.
    """

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    guard_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    group: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    group_label: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    label: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    description: Mapped[Any | None] = mapped_column(JSON, nullable=True)

    @declared_attr.directive
    def __table_args__(cls) -> tuple:
        return (
            Index(
                "uq_permissions_name_guard_tenant",
                "name",
                "guard_name",
                get_settings().team_foreign_key,
                unique=True,
                postgresql_where=text("deleted_at IS NULL"),
                sqlite_where=text("deleted_at IS NULL"),
            ),
        )

    def __repr__(self) -> str:
        return f"Permission(id={self.id!r}, name={self.name!r}, guard={self.guard_name!r})"
