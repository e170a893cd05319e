"""In-process RBAC store used for tests and single-process wiring."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from erp_rbac.core.rbac.errors import (
    DuplicateAssignmentError,
    NotFoundError,
    ValidationError,
)
from erp_rbac.core.rbac.types import PermissionDefinition, RoleAssignment, RoleDefinition


class InMemoryRbacStore:
    """Dictionary-backed store; a single lock makes check-then-write atomic."""

    def __init__(self) -> None:
        self._permissions: dict[str, PermissionDefinition] = {}
        self._roles: dict[str, RoleDefinition] = {}
        self._assignments: dict[UUID, RoleAssignment] = {}
        self._lock = asyncio.Lock()

    # ---- Permissions --------------------------------------------------------

    async def get_permission(self, name: str) -> PermissionDefinition | None:
        return self._permissions.get(name)

    async def list_permissions(self) -> Sequence[PermissionDefinition]:
        return list(self._permissions.values())

    async def add_permission(self, permission: PermissionDefinition) -> None:
        async with self._lock:
            if permission.name in self._permissions:
                raise ValidationError(f"Permission '{permission.name}' already exists")
            self._permissions[permission.name] = permission

    async def save_permission(self, permission: PermissionDefinition) -> None:
        async with self._lock:
            if permission.name not in self._permissions:
                raise NotFoundError(f"Permission '{permission.name}' not found")
            self._permissions[permission.name] = permission

    async def delete_permission(self, name: str) -> None:
        async with self._lock:
            if self._permissions.pop(name, None) is None:
                raise NotFoundError(f"Permission '{name}' not found")

    # ---- Roles --------------------------------------------------------------

    async def get_role(self, name: str) -> RoleDefinition | None:
        return self._roles.get(name)

    async def list_roles(self) -> Sequence[RoleDefinition]:
        return list(self._roles.values())

    async def add_role(self, role: RoleDefinition) -> None:
        async with self._lock:
            if role.name in self._roles:
                raise ValidationError(f"Role '{role.name}' already exists")
            self._roles[role.name] = role

    async def save_role(self, role: RoleDefinition) -> None:
        async with self._lock:
            if role.name not in self._roles:
                raise NotFoundError(f"Role '{role.name}' not found")
            self._roles[role.name] = role

    async def delete_role(self, name: str) -> None:
        async with self._lock:
            if self._roles.pop(name, None) is None:
                raise NotFoundError(f"Role '{name}' not found")

    # ---- Assignments --------------------------------------------------------

    def _active_for(self, user_id: str, role_name: str) -> RoleAssignment | None:
        for assignment in self._assignments.values():
            if (
                assignment.is_active
                and assignment.user_id == user_id
                and assignment.role_name == role_name
            ):
                return assignment
        return None

    async def add_assignment(self, assignment: RoleAssignment) -> None:
        async with self._lock:
            if assignment.is_active and self._active_for(assignment.user_id, assignment.role_name):
                raise DuplicateAssignmentError("User already has this role")
            self._assignments[assignment.id] = assignment

    async def save_assignment(self, assignment: RoleAssignment) -> None:
        async with self._lock:
            if assignment.id not in self._assignments:
                raise NotFoundError(f"Assignment '{assignment.id}' not found")
            self._assignments[assignment.id] = assignment

    async def get_active_assignment(self, user_id: str, role_name: str) -> RoleAssignment | None:
        return self._active_for(user_id, role_name)

    async def list_assignments(
        self,
        *,
        user_id: str | None = None,
        role_name: str | None = None,
        active_only: bool = False,
    ) -> Sequence[RoleAssignment]:
        return [
            assignment
            for assignment in self._assignments.values()
            if (user_id is None or assignment.user_id == user_id)
            and (role_name is None or assignment.role_name == role_name)
            and (not active_only or assignment.is_active)
        ]

    async def count_assignments(
        self, *, role_name: str | None = None, active_only: bool = False
    ) -> int:
        return len(await self.list_assignments(role_name=role_name, active_only=active_only))

    async def deactivate_assignment(
        self,
        assignment_id: UUID,
        *,
        removed_by: str | None,
        removed_at: datetime,
        reason: str | None,
    ) -> bool:
        async with self._lock:
            current = self._assignments.get(assignment_id)
            if current is None or not current.is_active:
                return False
            self._assignments[assignment_id] = current.model_copy(
                update={
                    "is_active": False,
                    "removed_by": removed_by,
                    "removed_at": removed_at,
                    "removal_reason": reason,
                }
            )
            return True


__all__ = ["InMemoryRbacStore"]
