"""Permission resolution: effective permission sets and access checks.

The engine owns no state. Each call reads assignments, roles and the
permission catalog from the store and evaluates them. Any missing data,
failed condition or unmet dependency is a deny.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any

from erp_rbac.common.logging import log_context
from erp_rbac.common.time import Clock, utc_now
from erp_rbac.core.directory import LocationHierarchy, UserDirectory
from erp_rbac.core.rbac.errors import RbacError
from erp_rbac.core.rbac.policy import SCOPE_RANK
from erp_rbac.core.rbac.types import (
    PERMISSION_NAME_PATTERN,
    AccessDecision,
    AdminLevel,
    ConditionResult,
    PermissionDefinition,
    PermissionScope,
    RecordScope,
    RequestContext,
    UserProfile,
)
from erp_rbac.core.rbac.validation import coerce_record
from erp_rbac.store.base import RbacStore

from .assignments import AssignmentStore
from .permissions import PermissionRegistry
from .roles import RoleRegistry

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(PERMISSION_NAME_PATTERN)


def _expand_implications(
    names: Iterable[str], catalog: Mapping[str, PermissionDefinition]
) -> dict[str, None]:
    """Add every transitively implied permission, keeping first-seen order."""
    expanded: dict[str, None] = dict.fromkeys(names)
    queue = deque(expanded)

    while queue:
        definition = catalog.get(queue.popleft())
        if definition is None:
            continue
        for implied in definition.dependencies.implies:
            if implied not in expanded:
                expanded[implied] = None
                queue.append(implied)

    return expanded


class ResolutionEngine:
    """Answer "does user U hold permission P in context C?"."""

    def __init__(
        self,
        store: RbacStore,
        *,
        permissions: PermissionRegistry,
        roles: RoleRegistry,
        assignments: AssignmentStore,
        users: UserDirectory | None = None,
        locations: LocationHierarchy | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._permissions = permissions
        self._roles = roles
        self._assignments = assignments
        self._users = users
        self._locations = locations
        self._clock = clock

    # ------------- effective permissions ---------

    async def get_user_permissions(self, user_id: str) -> list[PermissionDefinition]:
        """Union of effective permissions across active assignments, sorted by name."""
        names: dict[str, None] = {}
        resolved: set[str] = set()

        for assignment in await self._assignments.list_active(user_id):
            if assignment.role_name in resolved:
                continue
            resolved.add(assignment.role_name)
            try:
                role_permissions = await self._roles.resolve_effective_permissions(
                    assignment.role_name
                )
            except RbacError as exc:
                logger.warning(
                    "rbac.resolve.role_skipped",
                    extra=log_context(user_id=user_id, role_name=assignment.role_name, error=str(exc)),
                )
                continue
            names.update(dict.fromkeys(role_permissions))

        if not names:
            return []

        catalog = {p.name: p for p in await self._store.list_permissions()}
        expanded = _expand_implications(names, catalog)
        return sorted(
            (catalog[name] for name in expanded if name in catalog),
            key=lambda permission: permission.name,
        )

    # ------------- checks ------------------------

    async def has_permission(
        self,
        user_id: str,
        permission_name: str,
        context: RequestContext | Mapping[str, Any] | None = None,
    ) -> bool:
        decision = await self.explain(user_id, permission_name, context)
        return decision.allowed

    async def explain(
        self,
        user_id: str,
        permission_name: str,
        context: RequestContext | Mapping[str, Any] | None = None,
    ) -> AccessDecision:
        """Evaluate a permission check and report why it was allowed or denied."""
        name = str(permission_name).strip()
        ctx = coerce_record(RequestContext, context or {})
        if ctx.timestamp is None:
            ctx = ctx.model_copy(update={"timestamp": self._clock()})

        def deny(reason: str) -> AccessDecision:
            logger.debug(
                "rbac.check.denied",
                extra=log_context(user_id=user_id, permission=name, reason=reason),
            )
            return AccessDecision(allowed=False, permission=name, reason=reason)

        if not _NAME_RE.match(name):
            return deny("Malformed permission name")

        held = await self.get_user_permissions(user_id)
        by_name = {permission.name: permission for permission in held}
        permission = by_name.get(name)
        if permission is None:
            return deny("Permission not granted")

        profile: UserProfile | None = None
        if self._users is not None:
            profile = await self._users.get_user(user_id)
            if profile is not None and not profile.is_active:
                return deny("User is inactive")

        usable = self._usable(permission, ctx, by_name)
        if not usable.valid:
            return deny(usable.reason or "Conditions not met")

        if ctx.scope is None:
            return AccessDecision(
                allowed=True,
                permission=name,
                reason="Granted",
                granted_scope=permission.scope,
            )

        # Most permissive scope wins across every held variant of (resource, action).
        candidates = sorted(
            (
                candidate
                for candidate in held
                if candidate.resource == permission.resource
                and candidate.action == permission.action
            ),
            key=lambda candidate: SCOPE_RANK[candidate.scope],
            reverse=True,
        )
        for candidate in candidates:
            if candidate.name != permission.name and not self._usable(candidate, ctx, by_name).valid:
                continue
            if await self._scope_matches(candidate.scope, user_id, ctx.scope, profile):
                return AccessDecision(
                    allowed=True,
                    permission=name,
                    reason=f"Granted via {candidate.name}",
                    granted_scope=candidate.scope,
                )

        return deny("Record outside permitted scope")

    def _usable(
        self,
        permission: PermissionDefinition,
        context: RequestContext,
        held: Mapping[str, PermissionDefinition],
    ) -> ConditionResult:
        result = self._permissions.validate_conditions(permission, context)
        if not result.valid:
            return result
        missing = self._permissions.missing_dependencies(permission, held)
        if missing:
            return ConditionResult(
                valid=False, reason=f"Missing required permissions: {', '.join(missing)}"
            )
        return result

    async def _scope_matches(
        self,
        scope: PermissionScope,
        user_id: str,
        record: RecordScope,
        profile: UserProfile | None,
    ) -> bool:
        if scope is PermissionScope.ALL:
            return True
        if scope is PermissionScope.OWN:
            return record.owner_id is not None and record.owner_id == user_id

        if record.location_id is None or profile is None or profile.admin_scope is None:
            return False
        admin_scope = profile.admin_scope
        anchor = admin_scope.anchor_location_id
        if anchor is None:
            return admin_scope.level is AdminLevel.STATE
        if self._locations is None:
            return False
        return await self._locations.is_ancestor_or_equal(anchor, record.location_id)


__all__ = ["ResolutionEngine"]
