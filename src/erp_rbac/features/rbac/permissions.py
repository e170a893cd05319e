"""Permission catalog: definition, lookup and condition evaluation."""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from erp_rbac.common.logging import log_context
from erp_rbac.core.rbac.errors import ConflictError, CycleError, NotFoundError, ValidationError
from erp_rbac.core.rbac.types import (
    ConditionResult,
    IpRestrictions,
    PermissionDefinition,
    RequestContext,
    TimeRestrictions,
    Weekday,
)
from erp_rbac.core.rbac.validation import coerce_record
from erp_rbac.settings import get_settings
from erp_rbac.store.base import RbacStore

logger = logging.getLogger(__name__)

_VALID = ConditionResult(valid=True)

_IMMUTABLE_FIELDS = ("name",)


# ---------------------------------------------------------------------------
# Condition helpers
# ---------------------------------------------------------------------------


def _localize(timestamp: datetime | None, zone: ZoneInfo) -> datetime:
    """Wall-clock time used for hour/day checks.

    Aware timestamps are converted to ``zone``; naive ones are taken as given.
    """
    if timestamp is None:
        return datetime.now(zone)
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(zone)


def _check_time(rules: TimeRestrictions, timestamp: datetime | None, default: ZoneInfo) -> ConditionResult:
    zone = ZoneInfo(rules.timezone) if rules.timezone else default
    moment = _localize(timestamp, zone)
    if rules.allowed_hours is not None and not rules.allowed_hours.contains(moment.hour):
        return ConditionResult(valid=False, reason="Outside allowed hours")
    if rules.allowed_days and Weekday.of(moment) not in rules.allowed_days:
        return ConditionResult(valid=False, reason="Outside allowed days")
    return _VALID


def _in_any(address: ipaddress.IPv4Address | ipaddress.IPv6Address, networks: Iterable[str]) -> bool:
    return any(address in ipaddress.ip_network(network, strict=False) for network in networks)


def _check_ip(rules: IpRestrictions, ip: str | None) -> ConditionResult:
    if not rules.allowed_ips and not rules.blocked_ips:
        return _VALID
    if not ip:
        return ConditionResult(valid=False, reason="IP address required")
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return ConditionResult(valid=False, reason="IP address invalid")
    if _in_any(address, rules.blocked_ips):
        return ConditionResult(valid=False, reason="IP address blocked")
    if rules.allowed_ips and not _in_any(address, rules.allowed_ips):
        return ConditionResult(valid=False, reason="IP address not allowed")
    return _VALID


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class PermissionRegistry:
    """Permission catalog backed by an :class:`RbacStore`."""

    def __init__(self, store: RbacStore, *, timezone: str | None = None) -> None:
        self._store = store
        self._timezone = ZoneInfo(timezone or get_settings().default_timezone)

    @property
    def timezone(self) -> ZoneInfo:
        return self._timezone

    # ------------- lookup ------------------------

    async def get(self, name: str) -> PermissionDefinition | None:
        return await self._store.get_permission(name)

    async def require(self, name: str) -> PermissionDefinition:
        permission = await self._store.get_permission(name)
        if permission is None:
            raise NotFoundError(f"Permission '{name}' not found")
        return permission

    async def list_permissions(self, module: str | None = None) -> list[PermissionDefinition]:
        permissions = await self._store.list_permissions()
        if module is not None:
            permissions = [p for p in permissions if p.module == module]
        return sorted(permissions, key=lambda p: (p.module, p.name))

    async def get_by_module(self, module: str) -> list[PermissionDefinition]:
        permissions = [p for p in await self._store.list_permissions() if p.module == module]
        return sorted(permissions, key=lambda p: (p.category, p.name))

    # ------------- definition --------------------

    async def define_permission(
        self, spec: PermissionDefinition | Mapping[str, Any]
    ) -> PermissionDefinition:
        permission = coerce_record(PermissionDefinition, spec)
        if await self._store.get_permission(permission.name) is not None:
            raise ValidationError(f"Permission '{permission.name}' already exists")

        await self._validate_dependencies(permission)
        await self._store.add_permission(permission)
        logger.info("rbac.permission.define", extra=log_context(permission=permission.name))
        return permission

    async def update_permission(self, name: str, patch: Mapping[str, Any]) -> PermissionDefinition:
        current = await self.require(name)
        for field in _IMMUTABLE_FIELDS:
            if field in patch and patch[field] != getattr(current, field):
                raise ValidationError(f"Permission {field} cannot be changed")

        updated = coerce_record(PermissionDefinition, {**current.model_dump(), **patch})
        await self._validate_dependencies(updated)
        await self._store.save_permission(updated)
        logger.info(
            "rbac.permission.update",
            extra=log_context(permission=name, fields=",".join(sorted(patch))),
        )
        return updated

    async def delete_permission(self, name: str) -> None:
        await self.require(name)

        roles = sorted(role.name for role in await self._store.list_roles() if name in role.permissions)
        if roles:
            raise ConflictError(f"Permission '{name}' is used by roles: {', '.join(roles)}")

        dependents = sorted(
            permission.name
            for permission in await self._store.list_permissions()
            if name in permission.dependencies.requires or name in permission.dependencies.implies
        )
        if dependents:
            raise ConflictError(
                f"Permission '{name}' is a dependency of: {', '.join(dependents)}"
            )

        await self._store.delete_permission(name)
        logger.info("rbac.permission.delete", extra=log_context(permission=name))

    async def _validate_dependencies(self, permission: PermissionDefinition) -> None:
        catalog = {p.name: p for p in await self._store.list_permissions()}
        catalog[permission.name] = permission

        deps = permission.dependencies
        unknown = [name for name in (*deps.requires, *deps.implies) if name not in catalog]
        if unknown:
            raise ValidationError(f"Unknown dependency permissions: {', '.join(unknown)}")

        # The stored catalog is acyclic, so any new cycle runs through this permission.
        stack = list(deps.requires)
        seen: set[str] = set()
        while stack:
            current = stack.pop()
            if current == permission.name:
                raise CycleError(f"Permission '{permission.name}' requires itself transitively")
            if current in seen:
                continue
            seen.add(current)
            definition = catalog.get(current)
            if definition is not None:
                stack.extend(definition.dependencies.requires)

    # ------------- evaluation --------------------

    def validate_conditions(
        self,
        permission: PermissionDefinition,
        context: RequestContext | None = None,
    ) -> ConditionResult:
        """Evaluate time and IP restrictions; no conditions means valid."""
        conditions = permission.conditions
        if conditions is None:
            return _VALID
        context = context or RequestContext()

        if conditions.time_restrictions is not None:
            result = _check_time(conditions.time_restrictions, context.timestamp, self._timezone)
            if not result.valid:
                return result

        if conditions.ip_restrictions is not None:
            result = _check_ip(conditions.ip_restrictions, context.ip)
            if not result.valid:
                return result

        return _VALID

    @staticmethod
    def has_dependencies_satisfied(
        permission: PermissionDefinition, held_names: Iterable[str]
    ) -> bool:
        held = set(held_names)
        return all(name in held for name in permission.dependencies.requires)

    @staticmethod
    def missing_dependencies(
        permission: PermissionDefinition, held_names: Iterable[str]
    ) -> Sequence[str]:
        held = set(held_names)
        return [name for name in permission.dependencies.requires if name not in held]


__all__ = ["PermissionRegistry"]
