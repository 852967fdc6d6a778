"""RolePermission repository: role–permission membership (single entity responsibility).

The association is a set: attach only inserts pairs that are missing, so
no duplicate rows are ever written. Writes are core INSERT/DELETE on the
association table; Role.permissions is a read-only view.
"""

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_roles.infrastructure.persistence.models.permission import (
    Permission,
    role_has_permissions,
)

_rhp = role_has_permissions


class RolePermissionRepository:
    """Role–permission link table only. Attach/detach/replace and membership queries."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def permission_ids_for_role(self, role_id: int) -> set[int]:
        result = await self.db.execute(
            select(_rhp.c.permission_id).where(_rhp.c.role_id == role_id)
        )
        return set(result.scalars().all())

    async def permission_names_for_role(self, role_id: int) -> dict[str, int]:
        """Return {name: permission_id} of the non-deleted permissions role holds."""
        result = await self.db.execute(
            select(Permission.name, Permission.id)
            .join(_rhp, _rhp.c.permission_id == Permission.id)
            .where(_rhp.c.role_id == role_id, Permission.deleted_at.is_(None))
            .order_by(Permission.name)
        )
        return {name: permission_id for name, permission_id in result.all()}

    async def attach(self, role_id: int, permission_ids: list[int]) -> list[int]:
        """Attach permissions not already held. Returns the ids actually inserted."""
        held = await self.permission_ids_for_role(role_id)
        missing = [pid for pid in dict.fromkeys(permission_ids) if pid not in held]
        if missing:
            await self.db.execute(
                insert(_rhp),
                [{"role_id": role_id, "permission_id": pid} for pid in missing],
            )
        return missing

    async def detach(self, role_id: int, permission_ids: list[int]) -> int:
        """Detach permissions from role. Returns rows removed."""
        if not permission_ids:
            return 0
        result = await self.db.execute(
            delete(_rhp).where(
                _rhp.c.role_id == role_id,
                _rhp.c.permission_id.in_(permission_ids),
            )
        )
        return result.rowcount or 0

    async def replace(self, role_id: int, permission_ids: list[int]) -> tuple[list[int], list[int]]:
        """Make role hold exactly permission_ids. Returns (attached, detached)."""
        wanted = list(dict.fromkeys(permission_ids))
        held = await self.permission_ids_for_role(role_id)
        extra = sorted(held - set(wanted))
        await self.detach(role_id, extra)
        attached = await self.attach(role_id, wanted)
        return attached, extra

    async def detach_all_roles(self, permission_id: int) -> int:
        """Remove permission from every role. Returns rows removed."""
        result = await self.db.execute(
            delete(_rhp).where(_rhp.c.permission_id == permission_id)
        )
        return result.rowcount or 0

    async def detach_all_permissions(self, role_id: int) -> int:
        result = await self.db.execute(delete(_rhp).where(_rhp.c.role_id == role_id))
        return result.rowcount or 0

    async def copy(self, source_role_id: int, target_role_id: int) -> list[int]:
        """Give target every permission source holds. Returns ids attached."""
        return await self.attach(
            target_role_id, sorted(await self.permission_ids_for_role(source_role_id))
        )

    async def count_assigned(self, permission_ids: list[int]) -> int:
        """How many of permission_ids are held by at least one role."""
        if not permission_ids:
            return 0
        return int(
            await self.db.scalar(
                select(func.count(func.distinct(_rhp.c.permission_id))).where(
                    _rhp.c.permission_id.in_(permission_ids)
                )
            )
            or 0
        )

    async def role_counts(self, role_ids: list[int]) -> dict[int, int]:
        """Return {role_id: permissions held} (roles holding none are omitted)."""
        if not role_ids:
            return {}
        result = await self.db.execute(
            select(_rhp.c.role_id, func.count())
            .where(_rhp.c.role_id.in_(role_ids))
            .group_by(_rhp.c.role_id)
        )
        return {role_id: int(count) for role_id, count in result.all()}
