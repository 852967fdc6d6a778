"""SQLAlchemy mixins for common model patterns (DRY).

Provides: TimestampMixin, SoftDeleteMixin, TenantScopedMixin, StatusMixin.
Status is derived: it reads "deleted" whenever deleted_at is set, so the
stored column only ever holds "active" or "inactive".
"""

from datetime import datetime

from sqlalchemy import DateTime, String, case
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, declared_attr, mapped_column
from sqlalchemy.sql import func

from tenant_roles.core.config import get_settings
from tenant_roles.domain.enums import RolePermissionStatus
from tenant_roles.shared.utils.datetime import utc_now


class TimestampMixin:
    """Mixin for created_at and updated_at (server defaults, timezone-aware)."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        )


class SoftDeleteMixin:
    """Mixin for soft delete (deleted_at). Null means not deleted."""

    @declared_attr
    def deleted_at(cls) -> Mapped[datetime | None]:
        return mapped_column(DateTime(timezone=True), nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def mark_deleted(self) -> None:
        self.deleted_at = utc_now()

    def mark_restored(self) -> None:
        self.deleted_at = None


class TenantScopedMixin:
    """Mixin for the nullable tenant column (NULL = global/shared row).

    The attribute is always ``tenant_id``; the column name comes from
    settings.team_foreign_key when the model class is created.
    """

    @declared_attr
    def tenant_id(cls) -> Mapped[str | None]:
        return mapped_column(
            get_settings().team_foreign_key, String(64), nullable=True, index=True
        )


class StatusMixin:
    """Mixin for active/inactive status with "deleted" derived from deleted_at.

    Requires SoftDeleteMixin on the same model.
    """

    @declared_attr
    def stored_status(cls) -> Mapped[str]:
        return mapped_column(
            "status",
            String(16),
            nullable=False,
            default=RolePermissionStatus.ACTIVE.value,
            index=True,
        )

    @hybrid_property
    def status(self) -> RolePermissionStatus:
        if self.deleted_at is not None:
            return RolePermissionStatus.DELETED
        return RolePermissionStatus(self.stored_status or RolePermissionStatus.ACTIVE.value)

    @status.setter
    def status(self, value: RolePermissionStatus | str) -> None:
        value = RolePermissionStatus(value)
        if value is RolePermissionStatus.DELETED:
            raise ValueError("Status 'deleted' is derived; use soft delete instead")
        self.stored_status = value.value

    @status.expression
    def status(cls):
        return case(
            (cls.deleted_at.is_not(None), RolePermissionStatus.DELETED.value),
            else_=cls.stored_status,
        )
