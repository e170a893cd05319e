"""RBAC operations: bootstrap, role CRUD, assignments, evaluation and reporting."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import Field

from erp_rbac.common.logging import log_context
from erp_rbac.common.schema import BaseSchema
from erp_rbac.common.time import Clock, utc_now
from erp_rbac.core.directory import LocationHierarchy, UserDirectory
from erp_rbac.core.rbac.errors import RbacError, ValidationError
from erp_rbac.core.rbac.registry import PERMISSIONS, SYSTEM_ROLES
from erp_rbac.core.rbac.types import (
    AccessDecision,
    AssignmentMeta,
    PermissionDefinition,
    RequestContext,
    RoleAssignment,
    RoleDefinition,
    RoleHierarchyNode,
)
from erp_rbac.core.rbac.validation import coerce_record
from erp_rbac.store.base import RbacStore

from .assignments import SYSTEM_ACTOR, AssignmentStore
from .engine import ResolutionEngine
from .permissions import PermissionRegistry
from .roles import RoleRegistry

logger = logging.getLogger(__name__)

MIGRATION_REASON = "Migrated from account role"

# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class SeedReport(BaseSchema):
    """Outcome of :func:`initialize_rbac`."""

    permissions_created: int = 0
    permissions_skipped: int = 0
    roles_created: int = 0
    roles_skipped: int = 0


class RbacStatistics(BaseSchema):
    roles_total: int
    roles_system: int
    roles_custom: int
    roles_by_category: dict[str, int] = Field(default_factory=dict)
    permissions_total: int
    permissions_by_module: dict[str, int] = Field(default_factory=dict)
    assignments_total: int
    assignments_active: int


class MigrationReport(BaseSchema):
    migrated: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class UserRoleGrant(BaseSchema):
    """An active assignment together with the role it grants."""

    assignment: RoleAssignment
    role: RoleDefinition


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


async def initialize_rbac(store: RbacStore) -> SeedReport:
    """Seed system permissions and roles; records that already exist are skipped."""

    logger.info("rbac.seed.start")
    permissions = PermissionRegistry(store)
    roles = RoleRegistry(store)
    report = SeedReport()

    for definition in PERMISSIONS:
        if await permissions.get(definition.name) is None:
            try:
                await permissions.define_permission(definition)
            except ValidationError:
                # Lost a race with a concurrent seed; anything else is a real error.
                if await permissions.get(definition.name) is None:
                    raise
            else:
                report.permissions_created += 1
                continue
        logger.debug("rbac.seed.skip", extra=log_context(permission=definition.name))
        report.permissions_skipped += 1

    for definition in SYSTEM_ROLES:
        if await roles.get(definition.name) is None:
            try:
                await roles.define_role(definition)
            except ValidationError:
                if await roles.get(definition.name) is None:
                    raise
            else:
                report.roles_created += 1
                continue
        logger.debug("rbac.seed.skip", extra=log_context(role_name=definition.name))
        report.roles_skipped += 1

    logger.info("rbac.seed.success", extra=report.serializable_dict())
    return report


# ---------------------------------------------------------------------------
# RBAC service
# ---------------------------------------------------------------------------


class RbacService:
    """Facade exposed to the route layer."""

    def __init__(
        self,
        store: RbacStore,
        *,
        users: UserDirectory | None = None,
        locations: LocationHierarchy | None = None,
        clock: Clock = utc_now,
        timezone: str | None = None,
    ) -> None:
        self._store = store
        self._users = users
        self.permissions = PermissionRegistry(store, timezone=timezone)
        self.roles = RoleRegistry(store)
        self.assignments = AssignmentStore(store, self.roles, clock=clock)
        self.engine = ResolutionEngine(
            store,
            permissions=self.permissions,
            roles=self.roles,
            assignments=self.assignments,
            users=users,
            locations=locations,
            clock=clock,
        )

    async def initialize(self) -> SeedReport:
        return await initialize_rbac(self._store)

    # ------------- roles -------------------------

    async def list_roles(self) -> list[RoleDefinition]:
        return await self.roles.list_roles()

    async def get_role(self, name: str) -> RoleDefinition:
        return await self.roles.require(name)

    async def create_role(
        self,
        spec: RoleDefinition | Mapping[str, Any],
        *,
        actor_id: str | None = None,
    ) -> RoleDefinition:
        payload = spec.model_dump() if isinstance(spec, RoleDefinition) else dict(spec)
        payload["is_system"] = False
        if actor_id is not None:
            payload["created_by"] = actor_id
        return await self.roles.define_role(payload)

    async def update_role(
        self,
        name: str,
        patch: Mapping[str, Any],
        *,
        actor_id: str | None = None,
    ) -> RoleDefinition:
        return await self.roles.update_role(name, patch, actor_id=actor_id)

    async def delete_role(self, name: str, *, actor_id: str | None = None) -> None:
        await self.roles.delete_role(name, actor_id=actor_id)

    async def get_role_hierarchy(self) -> dict[str, RoleHierarchyNode]:
        return await self.roles.get_hierarchy()

    # ------------- permissions -------------------

    async def list_permissions(self, module: str | None = None) -> list[PermissionDefinition]:
        return await self.permissions.list_permissions(module)

    async def get_permission(self, name: str) -> PermissionDefinition:
        return await self.permissions.require(name)

    # ------------- assignments -------------------

    async def assign_role_to_user(
        self,
        user_id: str,
        role_name: str,
        actor_id: str | None,
        meta: AssignmentMeta | Mapping[str, Any] | None = None,
    ) -> RoleAssignment:
        return await self.assignments.assign_role(user_id, role_name, actor_id, meta)

    async def remove_role_from_user(
        self,
        user_id: str,
        role_name: str,
        actor_id: str | None,
        reason: str | None = None,
    ) -> RoleAssignment:
        return await self.assignments.remove_role(user_id, role_name, actor_id, reason)

    async def get_user_roles(self, user_id: str) -> list[UserRoleGrant]:
        grants: list[UserRoleGrant] = []
        for assignment in await self.assignments.list_active(user_id):
            role = await self.roles.get(assignment.role_name)
            if role is not None:
                grants.append(UserRoleGrant(assignment=assignment, role=role))
        grants.sort(key=lambda grant: (not grant.assignment.is_primary, -grant.role.level))
        return grants

    async def cleanup_expired_assignments(self) -> int:
        return await self.assignments.cleanup_expired()

    # ------------- evaluation --------------------

    async def get_user_permissions(self, user_id: str) -> list[PermissionDefinition]:
        return await self.engine.get_user_permissions(user_id)

    async def check_permission(
        self,
        user_id: str,
        permission_name: str,
        context: RequestContext | Mapping[str, Any] | None = None,
    ) -> bool:
        return await self.engine.has_permission(user_id, permission_name, context)

    async def explain_permission(
        self,
        user_id: str,
        permission_name: str,
        context: RequestContext | Mapping[str, Any] | None = None,
    ) -> AccessDecision:
        return await self.engine.explain(user_id, permission_name, context)

    # ------------- reporting ---------------------

    async def get_statistics(self) -> RbacStatistics:
        roles = await self._store.list_roles()
        permissions = await self._store.list_permissions()
        system_roles = sum(1 for role in roles if role.is_system)

        return RbacStatistics(
            roles_total=len(roles),
            roles_system=system_roles,
            roles_custom=len(roles) - system_roles,
            roles_by_category=dict(Counter(role.category.value for role in roles)),
            permissions_total=len(permissions),
            permissions_by_module=dict(sorted(Counter(p.module for p in permissions).items())),
            assignments_total=await self._store.count_assignments(),
            assignments_active=await self._store.count_assignments(active_only=True),
        )

    # ------------- migration ---------------------

    async def migrate_account_roles(
        self,
        user_ids: Iterable[str],
        *,
        actor_id: str | None = None,
    ) -> MigrationReport:
        """Give users without an active assignment their account-level role as primary."""
        if self._users is None:
            raise RuntimeError("A user directory is required to migrate account roles.")

        report = MigrationReport()
        for user_id in user_ids:
            profile = await self._users.get_user(user_id)
            if profile is None:
                report.failed[user_id] = "User not found"
                continue
            if not profile.account_role or await self.assignments.list_active(user_id):
                report.skipped.append(user_id)
                continue
            try:
                await self.assignments.assign_role(
                    user_id,
                    profile.account_role,
                    actor_id or SYSTEM_ACTOR,
                    coerce_record(
                        AssignmentMeta, {"is_primary": True, "reason": MIGRATION_REASON}
                    ),
                )
            except RbacError as exc:
                logger.warning(
                    "rbac.migrate.failed",
                    extra=log_context(user_id=user_id, role_name=profile.account_role, error=str(exc)),
                )
                report.failed[user_id] = str(exc)
                continue
            report.migrated.append(user_id)

        logger.info(
            "rbac.migrate.success",
            extra=log_context(
                migrated=len(report.migrated),
                skipped=len(report.skipped),
                failed=len(report.failed),
            ),
        )
        return report


__all__ = [
    "MigrationReport",
    "RbacService",
    "RbacStatistics",
    "SeedReport",
    "UserRoleGrant",
    "initialize_rbac",
]
