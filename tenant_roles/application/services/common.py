"""Helpers shared by the role and permission services: input validation and bulk runs."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from typing import Any

from tenant_roles.application.dtos.common import BulkFailure, BulkOperationResult
from tenant_roles.core.constants import PERMISSION_NAME_PATTERN, ROLE_NAME_MAX_LENGTH
from tenant_roles.domain.enums import RolePermissionStatus
from tenant_roles.domain.exceptions import RolesException, ValidationException
from tenant_roles.shared.telemetry import get_logger

logger = get_logger(__name__)

_PERMISSION_NAME_RE = re.compile(PERMISSION_NAME_PATTERN)

# Sentinel for "argument not given" where None is a valid value (labels)
UNSET: Any = object()


def validate_role_name(name: str) -> str:
    """Return the stripped role name.

    Raises:
        ValidationException: If empty or longer than 255 characters.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationException("Role name is required", "name")
    if len(name) > ROLE_NAME_MAX_LENGTH:
        raise ValidationException(
            f"Role name may not be longer than {ROLE_NAME_MAX_LENGTH} characters", "name"
        )
    return name


def validate_permission_name(name: str) -> str:
    """Return the stripped permission name.

    Raises:
        ValidationException: If empty, too long or not lowercase ``[a-z0-9_.-]``.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationException("Permission name is required", "name")
    if len(name) > ROLE_NAME_MAX_LENGTH:
        raise ValidationException(
            f"Permission name may not be longer than {ROLE_NAME_MAX_LENGTH} characters", "name"
        )
    if not _PERMISSION_NAME_RE.match(name):
        raise ValidationException(
            "Permission name may only contain lowercase letters, digits, '_', '.' and '-'",
            "name",
        )
    return name


def parse_status(value: RolePermissionStatus | str) -> RolePermissionStatus:
    """Return value as a settable status (active or inactive).

    Raises:
        ValidationException: If value is unknown or "deleted".
    """
    try:
        status = RolePermissionStatus(value)
    except ValueError as e:
        raise ValidationException(
            f"Invalid status {value!r}; expected one of "
            f"{RolePermissionStatus.ACTIVE.value}, {RolePermissionStatus.INACTIVE.value}",
            "status",
        ) from e
    if status is RolePermissionStatus.DELETED:
        raise ValidationException("Status 'deleted' is set by deleting, not directly", "status")
    return status


async def run_bulk(
    ids: list[int],
    operation: Callable[[int], Awaitable[Any]],
    name: str,
) -> BulkOperationResult:
    """Apply operation to each id; collect per-item outcomes without aborting."""
    success: list[int] = []
    failed: list[BulkFailure] = []
    for entity_id in dict.fromkeys(ids):
        try:
            await operation(entity_id)
        except RolesException as e:
            logger.warning("Bulk %s failed for id %s: %s", name, entity_id, e.message)
            failed.append({"id": entity_id, "reason": e.message})
            continue
        success.append(entity_id)
    return {"success": success, "failed": failed}
