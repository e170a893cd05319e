"""Role catalog with parent-chain inheritance."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from erp_rbac.common.logging import log_context
from erp_rbac.core.rbac.errors import ConflictError, CycleError, NotFoundError, ValidationError
from erp_rbac.core.rbac.registry import SYSTEM_ROLE_BY_NAME
from erp_rbac.core.rbac.types import RoleDefinition, RoleHierarchyNode
from erp_rbac.core.rbac.validation import coerce_record
from erp_rbac.store.base import RbacStore

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = ("name", "is_system")


class RoleRegistry:
    """Role definitions, inheritance checks and deletion guards."""

    def __init__(self, store: RbacStore) -> None:
        self._store = store

    # ------------- lookup ------------------------

    async def get(self, name: str) -> RoleDefinition | None:
        return await self._store.get_role(name)

    async def require(self, name: str) -> RoleDefinition:
        role = await self._store.get_role(name)
        if role is None:
            raise NotFoundError(f"Role '{name}' not found")
        return role

    async def list_roles(self) -> list[RoleDefinition]:
        roles = await self._store.list_roles()
        return sorted(roles, key=lambda role: (-role.level, role.name))

    # ------------- definition --------------------

    async def define_role(self, spec: RoleDefinition | Mapping[str, Any]) -> RoleDefinition:
        role = coerce_record(RoleDefinition, spec)
        if await self._store.get_role(role.name) is not None:
            raise ValidationError(f"Role '{role.name}' already exists")

        await self._validate_references(role)
        await self._store.add_role(role)
        logger.info(
            "rbac.role.define",
            extra=log_context(role_name=role.name, actor_id=role.created_by),
        )
        return role

    async def update_role(
        self,
        name: str,
        patch: Mapping[str, Any],
        *,
        actor_id: str | None = None,
    ) -> RoleDefinition:
        current = await self.require(name)
        if current.is_system or not current.is_modifiable:
            raise ConflictError(f"Role '{name}' cannot be modified")
        for field in _IMMUTABLE_FIELDS:
            if field in patch and patch[field] != getattr(current, field):
                raise ValidationError(f"Role {field} cannot be changed")

        payload = {**current.model_dump(), **patch}
        if actor_id is not None:
            payload["updated_by"] = actor_id
        updated = coerce_record(RoleDefinition, payload)

        await self._validate_references(updated)
        await self._store.save_role(updated)
        logger.info(
            "rbac.role.update",
            extra=log_context(role_name=name, actor_id=actor_id, fields=",".join(sorted(patch))),
        )
        return updated

    async def delete_role(self, name: str, *, actor_id: str | None = None) -> None:
        role = await self.require(name)
        if role.is_system or not role.is_deletable:
            raise ConflictError(f"Role '{name}' cannot be deleted")

        active = await self._store.count_assignments(role_name=name, active_only=True)
        if active:
            raise ConflictError(f"Role '{name}' has {active} active assignment(s)")

        others = await self._store.list_roles()
        children = sorted(other.name for other in others if other.parent == name)
        if children:
            raise ConflictError(f"Role '{name}' is the parent of: {', '.join(children)}")

        gated = sorted(
            other.name for other in others if other.name != name and name in other.assignable_by
        )
        if gated:
            raise ConflictError(f"Role '{name}' is required to assign: {', '.join(gated)}")

        await self._store.delete_role(name)
        logger.info("rbac.role.delete", extra=log_context(role_name=name, actor_id=actor_id))

    async def _validate_references(self, role: RoleDefinition) -> None:
        missing = [
            name for name in role.permissions if await self._store.get_permission(name) is None
        ]
        if missing:
            raise ValidationError(f"Unknown permissions: {', '.join(missing)}")

        roles = {existing.name: existing for existing in await self._store.list_roles()}
        # System role names are reserved even before the catalog is fully seeded.
        known = roles.keys() | SYSTEM_ROLE_BY_NAME.keys() | {role.name}
        unknown = [name for name in role.assignable_by if name not in known]
        if unknown:
            raise ValidationError(f"Unknown assigner roles: {', '.join(unknown)}")

        if role.parent is None:
            return
        if role.parent not in roles:
            raise ValidationError(f"Unknown parent role '{role.parent}'")

        # Walk up from the new parent; reaching this role again means a cycle.
        current: str | None = role.parent
        seen: set[str] = set()
        while current is not None and current not in seen:
            if current == role.name:
                raise CycleError(f"Role '{role.name}' would inherit from itself")
            seen.add(current)
            parent = roles.get(current)
            current = parent.parent if parent is not None else None

    # ------------- resolution --------------------

    async def resolve_effective_permissions(self, role: RoleDefinition | str) -> tuple[str, ...]:
        """Own permissions followed by each ancestor's, de-duplicated in order."""
        current: RoleDefinition | None = (
            role if isinstance(role, RoleDefinition) else await self.require(role)
        )
        visited: list[str] = []
        names: dict[str, None] = {}

        while current is not None:
            if current.name in visited:
                raise CycleError(
                    f"Role hierarchy cycle: {' -> '.join([*visited, current.name])}"
                )
            visited.append(current.name)
            names.update(dict.fromkeys(current.permissions))

            if current.parent is None:
                break
            parent = await self._store.get_role(current.parent)
            if parent is None:
                raise NotFoundError(
                    f"Parent role '{current.parent}' of '{current.name}' not found"
                )
            current = parent

        return tuple(names)

    async def get_hierarchy(self) -> dict[str, RoleHierarchyNode]:
        roles = await self.list_roles()
        children: dict[str, list[str]] = {role.name: [] for role in roles}
        for role in roles:
            if role.parent in children:
                children[role.parent].append(role.name)

        return {
            role.name: RoleHierarchyNode(
                level=role.level,
                parent=role.parent,
                children=tuple(sorted(children[role.name])),
            )
            for role in roles
        }


__all__ = ["RoleRegistry"]
