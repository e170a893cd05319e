"""User-role assignments with temporal validity."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from erp_rbac.common.logging import log_context
from erp_rbac.common.time import Clock, ensure_aware, utc_now
from erp_rbac.core.rbac.errors import (
    ConflictError,
    DuplicateAssignmentError,
    NotFoundError,
    ValidationError,
)
from erp_rbac.core.rbac.types import AssignmentMeta, RoleAssignment, RoleDefinition
from erp_rbac.core.rbac.validation import coerce_record
from erp_rbac.store.base import RbacStore

from .roles import RoleRegistry

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
EXPIRED_REASON = "expired"


class AssignmentStore:
    """Assign, remove and sweep role assignments.

    The duplicate check here is advisory; the underlying store enforces the
    one-active-assignment-per-(user, role) constraint atomically. Roles with
    ``assignable_by`` can only be granted by holders of one of those roles or
    by the ``system`` actor.
    """

    def __init__(self, store: RbacStore, roles: RoleRegistry, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._roles = roles
        self._clock = clock

    async def assign_role(
        self,
        user_id: str,
        role_name: str,
        assigned_by: str | None,
        meta: AssignmentMeta | Mapping[str, Any] | None = None,
    ) -> RoleAssignment:
        options = coerce_record(AssignmentMeta, meta or {})
        role = await self._roles.require(role_name)
        now = ensure_aware(self._clock())
        valid_from = options.valid_from or now

        if options.expires_at is not None and options.expires_at <= valid_from:
            raise ValidationError("expires_at must be after valid_from")

        await self._check_assigner(role, assigned_by, now)

        existing = await self._store.get_active_assignment(user_id, role.name)
        if existing is not None:
            if not existing.is_expired(now):
                logger.info(
                    "rbac.assign.duplicate",
                    extra=log_context(user_id=user_id, role_name=role.name, actor_id=assigned_by),
                )
                raise DuplicateAssignmentError("User already has this role")
            await self._store.deactivate_assignment(
                existing.id, removed_by=SYSTEM_ACTOR, removed_at=now, reason=EXPIRED_REASON
            )

        if role.max_users is not None:
            # Expired holders still flagged active until the next sweep do not count.
            holders = [
                holder
                for holder in await self._store.list_assignments(
                    role_name=role.name, active_only=True
                )
                if not holder.is_expired(now)
            ]
            if len(holders) >= role.max_users:
                raise ConflictError("Role has reached maximum user limit")

        assignment = coerce_record(
            RoleAssignment,
            {
                "user_id": user_id,
                "role_name": role.name,
                "assigned_by": assigned_by,
                "assigned_at": now,
                "reason": options.reason,
                "is_primary": options.is_primary,
                "valid_from": valid_from,
                "expires_at": options.expires_at,
            },
        )
        await self._store.add_assignment(assignment)
        if assignment.is_primary:
            await self._demote_primary(user_id, keep=assignment)

        logger.info(
            "rbac.assign.success",
            extra=log_context(
                user_id=user_id,
                role_name=role.name,
                assignment_id=str(assignment.id),
                actor_id=assigned_by,
                is_primary=assignment.is_primary,
            ),
        )
        return assignment

    async def _check_assigner(
        self, role: RoleDefinition, assigned_by: str | None, now: datetime
    ) -> None:
        if not role.assignable_by or assigned_by == SYSTEM_ACTOR:
            return
        if assigned_by is not None:
            for name in role.assignable_by:
                held = await self._store.get_active_assignment(assigned_by, name)
                if held is not None and held.is_effective(now):
                    return

        logger.warning(
            "rbac.assign.forbidden",
            extra=log_context(role_name=role.name, actor_id=assigned_by),
        )
        raise ConflictError("You do not have permission to assign this role")

    async def _demote_primary(self, user_id: str, *, keep: RoleAssignment) -> None:
        for current in await self._store.list_assignments(user_id=user_id, active_only=True):
            if current.is_primary and current.id != keep.id:
                await self._store.save_assignment(current.model_copy(update={"is_primary": False}))

    async def remove_role(
        self,
        user_id: str,
        role_name: str,
        removed_by: str | None,
        reason: str | None = None,
    ) -> RoleAssignment:
        existing = await self._store.get_active_assignment(user_id, role_name)
        now = ensure_aware(self._clock())
        if existing is None or not await self._store.deactivate_assignment(
            existing.id, removed_by=removed_by, removed_at=now, reason=reason
        ):
            raise NotFoundError("User does not have this role")

        logger.info(
            "rbac.remove.success",
            extra=log_context(
                user_id=user_id,
                role_name=role_name,
                assignment_id=str(existing.id),
                actor_id=removed_by,
            ),
        )
        return existing.model_copy(
            update={
                "is_active": False,
                "removed_by": removed_by,
                "removed_at": now,
                "removal_reason": reason,
            }
        )

    async def list_active(self, user_id: str) -> list[RoleAssignment]:
        """Active assignments that have started and not yet expired."""
        now = ensure_aware(self._clock())
        assignments = await self._store.list_assignments(user_id=user_id, active_only=True)
        return [assignment for assignment in assignments if assignment.is_effective(now)]

    async def list_for_user(
        self, user_id: str, *, include_inactive: bool = False
    ) -> list[RoleAssignment]:
        return list(
            await self._store.list_assignments(user_id=user_id, active_only=not include_inactive)
        )

    async def cleanup_expired(self) -> int:
        """Deactivate active assignments past ``expires_at``; returns how many."""
        now = ensure_aware(self._clock())
        deactivated = 0
        for assignment in await self._store.list_assignments(active_only=True):
            if not assignment.is_expired(now):
                continue
            if await self._store.deactivate_assignment(
                assignment.id, removed_by=SYSTEM_ACTOR, removed_at=now, reason=EXPIRED_REASON
            ):
                deactivated += 1

        logger.info("rbac.cleanup.expired", extra=log_context(deactivated=deactivated))
        return deactivated


__all__ = ["AssignmentStore", "EXPIRED_REASON", "SYSTEM_ACTOR"]
