"""RBAC store backed by an async SQLAlchemy session.

The store flushes but never commits; the caller owns the transaction
(see ``erp_rbac.db.session_scope``). Inserts run inside a savepoint so a
uniqueness violation undoes only the rejected row.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_rbac.common.logging import log_context
from erp_rbac.core.rbac.errors import (
    DuplicateAssignmentError,
    NotFoundError,
    RbacError,
    ValidationError,
)
from erp_rbac.core.rbac.types import PermissionDefinition, RoleAssignment, RoleDefinition
from erp_rbac.db.base import Base
from erp_rbac.db.models import PermissionRow, RoleAssignmentRow, RolePermissionRow, RoleRow

logger = logging.getLogger(__name__)

_FRESH = {"populate_existing": True}

# ---------------------------------------------------------------------------
# Row <-> record mapping
# ---------------------------------------------------------------------------


def _permission_values(permission: PermissionDefinition) -> dict[str, Any]:
    return {
        "name": permission.name,
        "display_name": permission.display_name,
        "description": permission.description,
        "module": permission.module,
        "category": permission.category,
        "resource": permission.resource,
        "action": permission.action,
        "scope": permission.scope,
        "conditions": (
            permission.conditions.model_dump(mode="json") if permission.conditions else None
        ),
        "dependencies": permission.dependencies.model_dump(mode="json"),
        "is_system": permission.is_system,
    }


def _permission_from_row(row: PermissionRow) -> PermissionDefinition:
    return PermissionDefinition.model_validate(
        {
            "name": row.name,
            "display_name": row.display_name,
            "description": row.description,
            "module": row.module,
            "category": row.category,
            "resource": row.resource,
            "action": row.action,
            "scope": row.scope,
            "conditions": row.conditions,
            "dependencies": row.dependencies or {},
            "is_system": row.is_system,
        }
    )


def _role_values(role: RoleDefinition) -> dict[str, Any]:
    return {
        "name": role.name,
        "display_name": role.display_name,
        "description": role.description,
        "level": role.level,
        "category": role.category,
        "parent_name": role.parent,
        "is_system": role.is_system,
        "is_deletable": role.is_deletable,
        "is_modifiable": role.is_modifiable,
        "max_users": role.max_users,
        "assignable_by": list(role.assignable_by),
        "created_by": role.created_by,
        "updated_by": role.updated_by,
    }


def _role_from_row(row: RoleRow, permissions: Sequence[str]) -> RoleDefinition:
    return RoleDefinition(
        name=row.name,
        display_name=row.display_name,
        description=row.description,
        level=row.level,
        category=row.category,
        permissions=tuple(permissions),
        parent=row.parent_name,
        is_system=row.is_system,
        is_deletable=row.is_deletable,
        is_modifiable=row.is_modifiable,
        max_users=row.max_users,
        assignable_by=tuple(row.assignable_by or ()),
        created_by=row.created_by,
        updated_by=row.updated_by,
    )


_ASSIGNMENT_FIELDS = (
    "user_id",
    "role_name",
    "assigned_by",
    "assigned_at",
    "reason",
    "is_primary",
    "valid_from",
    "expires_at",
    "is_active",
    "removed_by",
    "removed_at",
    "removal_reason",
)


def _assignment_from_row(row: RoleAssignmentRow) -> RoleAssignment:
    return RoleAssignment(
        id=row.id,
        **{field: getattr(row, field) for field in _ASSIGNMENT_FIELDS},
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlAlchemyRbacStore:
    """RBAC store operating within a caller-provided ``AsyncSession``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _insert_or_conflict(self, row: Base, error: RbacError) -> None:
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError as exc:
            logger.debug(
                "rbac.store.conflict",
                extra=log_context(table=row.__tablename__, error=str(error)),
            )
            raise error from exc

    # ---- Permissions --------------------------------------------------------

    async def get_permission(self, name: str) -> PermissionDefinition | None:
        row = await self._session.get(PermissionRow, name, populate_existing=True)
        return _permission_from_row(row) if row is not None else None

    async def list_permissions(self) -> Sequence[PermissionDefinition]:
        stmt = select(PermissionRow).order_by(PermissionRow.name).execution_options(**_FRESH)
        result = await self._session.execute(stmt)
        return [_permission_from_row(row) for row in result.scalars().all()]

    async def add_permission(self, permission: PermissionDefinition) -> None:
        if await self._session.get(PermissionRow, permission.name) is not None:
            raise ValidationError(f"Permission '{permission.name}' already exists")
        await self._insert_or_conflict(
            PermissionRow(**_permission_values(permission)),
            ValidationError(f"Permission '{permission.name}' already exists"),
        )

    async def save_permission(self, permission: PermissionDefinition) -> None:
        row = await self._session.get(PermissionRow, permission.name, populate_existing=True)
        if row is None:
            raise NotFoundError(f"Permission '{permission.name}' not found")
        for key, value in _permission_values(permission).items():
            setattr(row, key, value)
        await self._session.flush([row])

    async def delete_permission(self, name: str) -> None:
        row = await self._session.get(PermissionRow, name)
        if row is None:
            raise NotFoundError(f"Permission '{name}' not found")
        await self._session.delete(row)
        await self._session.flush()

    # ---- Roles --------------------------------------------------------------

    async def _role_permission_names(self, role_names: Sequence[str]) -> dict[str, list[str]]:
        if not role_names:
            return {}
        stmt = (
            select(RolePermissionRow.role_name, RolePermissionRow.permission_name)
            .where(RolePermissionRow.role_name.in_(tuple(role_names)))
            .order_by(RolePermissionRow.role_name, RolePermissionRow.position)
        )
        grouped: dict[str, list[str]] = defaultdict(list)
        for role_name, permission_name in (await self._session.execute(stmt)).all():
            grouped[role_name].append(permission_name)
        return grouped

    async def _write_role_permissions(self, role: RoleDefinition) -> None:
        await self._session.execute(
            delete(RolePermissionRow).where(RolePermissionRow.role_name == role.name)
        )
        if role.permissions:
            await self._session.execute(
                insert(RolePermissionRow),
                [
                    {"role_name": role.name, "permission_name": name, "position": index}
                    for index, name in enumerate(role.permissions)
                ],
            )

    async def get_role(self, name: str) -> RoleDefinition | None:
        row = await self._session.get(RoleRow, name, populate_existing=True)
        if row is None:
            return None
        permissions = await self._role_permission_names([name])
        return _role_from_row(row, permissions.get(name, ()))

    async def list_roles(self) -> Sequence[RoleDefinition]:
        stmt = select(RoleRow).order_by(RoleRow.name).execution_options(**_FRESH)
        rows = list((await self._session.execute(stmt)).scalars().all())
        permissions = await self._role_permission_names([row.name for row in rows])
        return [_role_from_row(row, permissions.get(row.name, ())) for row in rows]

    async def add_role(self, role: RoleDefinition) -> None:
        if await self._session.get(RoleRow, role.name) is not None:
            raise ValidationError(f"Role '{role.name}' already exists")
        await self._insert_or_conflict(
            RoleRow(**_role_values(role)), ValidationError(f"Role '{role.name}' already exists")
        )
        await self._write_role_permissions(role)

    async def save_role(self, role: RoleDefinition) -> None:
        row = await self._session.get(RoleRow, role.name, populate_existing=True)
        if row is None:
            raise NotFoundError(f"Role '{role.name}' not found")
        for key, value in _role_values(role).items():
            setattr(row, key, value)
        await self._session.flush([row])
        await self._write_role_permissions(role)

    async def delete_role(self, name: str) -> None:
        row = await self._session.get(RoleRow, name)
        if row is None:
            raise NotFoundError(f"Role '{name}' not found")
        await self._session.execute(
            delete(RolePermissionRow).where(RolePermissionRow.role_name == name)
        )
        await self._session.delete(row)
        await self._session.flush()

    # ---- Assignments --------------------------------------------------------

    async def add_assignment(self, assignment: RoleAssignment) -> None:
        row = RoleAssignmentRow(
            id=assignment.id,
            **{field: getattr(assignment, field) for field in _ASSIGNMENT_FIELDS},
        )
        await self._insert_or_conflict(row, DuplicateAssignmentError("User already has this role"))

    async def save_assignment(self, assignment: RoleAssignment) -> None:
        row = await self._session.get(RoleAssignmentRow, assignment.id, populate_existing=True)
        if row is None:
            raise NotFoundError(f"Assignment '{assignment.id}' not found")
        for field in _ASSIGNMENT_FIELDS:
            setattr(row, field, getattr(assignment, field))
        await self._session.flush([row])

    async def get_active_assignment(self, user_id: str, role_name: str) -> RoleAssignment | None:
        stmt = (
            select(RoleAssignmentRow)
            .where(
                RoleAssignmentRow.user_id == user_id,
                RoleAssignmentRow.role_name == role_name,
                RoleAssignmentRow.is_active.is_(True),
            )
            .limit(1)
            .execution_options(**_FRESH)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _assignment_from_row(row) if row is not None else None

    async def list_assignments(
        self,
        *,
        user_id: str | None = None,
        role_name: str | None = None,
        active_only: bool = False,
    ) -> Sequence[RoleAssignment]:
        stmt = select(RoleAssignmentRow).order_by(RoleAssignmentRow.assigned_at)
        if user_id is not None:
            stmt = stmt.where(RoleAssignmentRow.user_id == user_id)
        if role_name is not None:
            stmt = stmt.where(RoleAssignmentRow.role_name == role_name)
        if active_only:
            stmt = stmt.where(RoleAssignmentRow.is_active.is_(True))
        result = await self._session.execute(stmt.execution_options(**_FRESH))
        return [_assignment_from_row(row) for row in result.scalars().all()]

    async def count_assignments(
        self, *, role_name: str | None = None, active_only: bool = False
    ) -> int:
        stmt = select(func.count()).select_from(RoleAssignmentRow)
        if role_name is not None:
            stmt = stmt.where(RoleAssignmentRow.role_name == role_name)
        if active_only:
            stmt = stmt.where(RoleAssignmentRow.is_active.is_(True))
        return int((await self._session.execute(stmt)).scalar_one())

    async def deactivate_assignment(
        self,
        assignment_id: UUID,
        *,
        removed_by: str | None,
        removed_at: datetime,
        reason: str | None,
    ) -> bool:
        await self._session.flush()
        stmt = (
            update(RoleAssignmentRow)
            .where(
                RoleAssignmentRow.id == assignment_id,
                RoleAssignmentRow.is_active.is_(True),
            )
            .values(
                is_active=False,
                removed_by=removed_by,
                removed_at=removed_at,
                removal_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


__all__ = ["SqlAlchemyRbacStore"]
