"""Async document-store contract consumed by the RBAC registries.

Stores persist immutable records and own the uniqueness constraints:

* permission and role names are unique (``ValidationError`` on duplicates);
* at most one *active* assignment exists per ``(user_id, role_name)``
  (``DuplicateAssignmentError`` on violation, enforced atomically);
* ``deactivate_assignment`` is a conditional write keyed by assignment id that
  reports whether this call performed the transition.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from erp_rbac.core.rbac.types import PermissionDefinition, RoleAssignment, RoleDefinition


@runtime_checkable
class RbacStore(Protocol):
    # ---- Permissions --------------------------------------------------------

    async def get_permission(self, name: str) -> PermissionDefinition | None: ...

    async def list_permissions(self) -> Sequence[PermissionDefinition]: ...

    async def add_permission(self, permission: PermissionDefinition) -> None: ...

    async def save_permission(self, permission: PermissionDefinition) -> None: ...

    async def delete_permission(self, name: str) -> None: ...

    # ---- Roles --------------------------------------------------------------

    async def get_role(self, name: str) -> RoleDefinition | None: ...

    async def list_roles(self) -> Sequence[RoleDefinition]: ...

    async def add_role(self, role: RoleDefinition) -> None: ...

    async def save_role(self, role: RoleDefinition) -> None: ...

    async def delete_role(self, name: str) -> None: ...

    # ---- Assignments --------------------------------------------------------

    async def add_assignment(self, assignment: RoleAssignment) -> None: ...

    async def save_assignment(self, assignment: RoleAssignment) -> None: ...

    async def get_active_assignment(
        self, user_id: str, role_name: str
    ) -> RoleAssignment | None: ...

    async def list_assignments(
        self,
        *,
        user_id: str | None = None,
        role_name: str | None = None,
        active_only: bool = False,
    ) -> Sequence[RoleAssignment]: ...

    async def count_assignments(
        self, *, role_name: str | None = None, active_only: bool = False
    ) -> int: ...

    async def deactivate_assignment(
        self,
        assignment_id: UUID,
        *,
        removed_by: str | None,
        removed_at: datetime,
        reason: str | None,
    ) -> bool: ...


__all__ = ["RbacStore"]
