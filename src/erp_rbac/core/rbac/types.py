"""RBAC type definitions used across the stack.

Every record is an immutable pydantic model. Updates go through
``model_copy``/``model_validate`` and the store persists the new copy.
"""

from __future__ import annotations

import enum
import ipaddress
from datetime import datetime
from typing import Annotated, Any
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)

from erp_rbac.common.time import ensure_aware, utc_now

PERMISSION_NAME_PATTERN = r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)+$"
ROLE_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"

PermissionName = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=100, pattern=PERMISSION_NAME_PATTERN),
]
"""Dot-separated, lower-case permission identity such as ``users.read.regional``."""

RoleName = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=50, pattern=ROLE_NAME_PATTERN),
]


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class PermissionScope(str, enum.Enum):
    """Breadth of records a permission applies to."""

    OWN = "own"
    REGIONAL = "regional"
    ALL = "all"


class RoleCategory(str, enum.Enum):
    """Role groupings used for listing and statistics."""

    SYSTEM = "system"
    COORDINATOR = "coordinator"
    STAFF = "staff"
    CUSTOM = "custom"


class AdminLevel(str, enum.Enum):
    """Position of a user's administrative scope in the location hierarchy."""

    STATE = "state"
    DISTRICT = "district"
    AREA = "area"
    UNIT = "unit"


class Weekday(str, enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def of(cls, moment: datetime) -> Weekday:
        """Return the weekday of ``moment`` (Monday is ``datetime.weekday() == 0``)."""
        return _WEEKDAY_ORDER[moment.weekday()]


_WEEKDAY_ORDER: tuple[Weekday, ...] = tuple(Weekday)


# ---------------------------------------------------------------------------
# Base record
# ---------------------------------------------------------------------------


class RbacRecord(BaseModel):
    """Frozen pydantic base for RBAC records."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ---------------------------------------------------------------------------
# Permission conditions and dependencies
# ---------------------------------------------------------------------------


class AllowedHours(RbacRecord):
    """Half-open hour window ``[start, end)`` in 24h clock."""

    start: int = Field(ge=0, le=23)
    end: int = Field(ge=1, le=24)

    @model_validator(mode="after")
    def _check_window(self) -> AllowedHours:
        if self.start >= self.end:
            raise ValueError("allowed_hours.start must be before allowed_hours.end")
        return self

    def contains(self, hour: int) -> bool:
        return self.start <= hour < self.end


class TimeRestrictions(RbacRecord):
    allowed_hours: AllowedHours | None = None
    allowed_days: tuple[Weekday, ...] = ()
    timezone: str | None = None

    @field_validator("allowed_days", mode="before")
    @classmethod
    def _v_days(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return tuple(
                item.strip().lower() if isinstance(item, str) else item for item in value
            )
        return value

    @field_validator("timezone")
    @classmethod
    def _v_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value


class IpRestrictions(RbacRecord):
    """Allow/block lists holding single addresses or CIDR networks."""

    allowed_ips: tuple[str, ...] = ()
    blocked_ips: tuple[str, ...] = ()

    @field_validator("allowed_ips", "blocked_ips")
    @classmethod
    def _v_networks(cls, values: tuple[str, ...]) -> tuple[str, ...]:
        for value in values:
            try:
                ipaddress.ip_network(value, strict=False)
            except ValueError as exc:
                raise ValueError(f"Invalid IP address or network: {value!r}") from exc
        return tuple(dict.fromkeys(values))


class PermissionConditions(RbacRecord):
    time_restrictions: TimeRestrictions | None = None
    ip_restrictions: IpRestrictions | None = None


class PermissionDependencies(RbacRecord):
    """``requires`` must also be held; ``implies`` are granted alongside."""

    requires: tuple[PermissionName, ...] = ()
    implies: tuple[PermissionName, ...] = ()

    @field_validator("requires", "implies")
    @classmethod
    def _v_unique(cls, values: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(values))


class PermissionDefinition(RbacRecord):
    """Catalog entry for a single permission."""

    name: PermissionName
    display_name: str = Field(default="", max_length=150)
    description: str = Field(default="", max_length=500)
    module: str = Field(min_length=1, max_length=50)
    category: str = Field(default="", max_length=50)
    resource: str = Field(min_length=1, max_length=100)
    action: str = Field(min_length=1, max_length=100)
    scope: PermissionScope
    conditions: PermissionConditions | None = None
    dependencies: PermissionDependencies = Field(default_factory=PermissionDependencies)
    is_system: bool = False

    @model_validator(mode="before")
    @classmethod
    def _fill_labels(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("display_name") and data.get("name"):
                data["display_name"] = data["name"]
            if not data.get("category") and data.get("action"):
                data["category"] = data["action"]
        return data

    @model_validator(mode="after")
    def _check_self_reference(self) -> PermissionDefinition:
        if self.name in self.dependencies.requires or self.name in self.dependencies.implies:
            raise ValueError(f"Permission '{self.name}' cannot depend on itself")
        return self


# ---------------------------------------------------------------------------
# Roles and assignments
# ---------------------------------------------------------------------------


class RoleDefinition(RbacRecord):
    """Named bundle of permissions with an optional parent to inherit from.

    A non-empty ``assignable_by`` restricts who may grant the role to holders
    of one of the listed roles.
    """

    name: RoleName
    display_name: str = Field(default="", max_length=100)
    description: str = Field(default="", max_length=500)
    level: int = Field(ge=0, le=10, strict=True)
    category: RoleCategory
    permissions: tuple[PermissionName, ...] = ()
    parent: RoleName | None = None
    is_system: bool = False
    is_deletable: bool = True
    is_modifiable: bool = True
    max_users: int | None = Field(default=None, ge=1)
    assignable_by: tuple[RoleName, ...] = ()
    created_by: str | None = None
    updated_by: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_display_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("display_name") and data.get("name"):
            data = dict(data)
            data["display_name"] = data["name"]
        return data

    @field_validator("permissions", "assignable_by")
    @classmethod
    def _v_unique(cls, values: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(values))

    @model_validator(mode="after")
    def _check_parent(self) -> RoleDefinition:
        if self.parent == self.name:
            raise ValueError(f"Role '{self.name}' cannot be its own parent")
        return self


def _aware(value: datetime | None) -> datetime | None:
    return None if value is None else ensure_aware(value)


class AssignmentMeta(RbacRecord):
    """Optional metadata supplied when assigning a role."""

    reason: str | None = Field(default=None, max_length=500)
    is_primary: bool = False
    valid_from: datetime | None = None
    expires_at: datetime | None = None

    @field_validator("valid_from", "expires_at")
    @classmethod
    def _v_dates(cls, value: datetime | None) -> datetime | None:
        return _aware(value)


class RoleAssignment(RbacRecord):
    """Link between a user and a role. Deactivated, never deleted."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(min_length=1)
    role_name: RoleName
    assigned_by: str | None = None
    assigned_at: datetime = Field(default_factory=utc_now)
    reason: str | None = None
    is_primary: bool = False
    valid_from: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None
    is_active: bool = True
    removed_by: str | None = None
    removed_at: datetime | None = None
    removal_reason: str | None = None

    @field_validator("assigned_at", "valid_from", "expires_at", "removed_at")
    @classmethod
    def _v_dates(cls, value: datetime | None) -> datetime | None:
        return _aware(value)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < ensure_aware(now)

    def is_effective(self, now: datetime) -> bool:
        """Active, started and not yet expired at ``now``."""
        now = ensure_aware(now)
        return self.is_active and self.valid_from <= now and not self.is_expired(now)


# ---------------------------------------------------------------------------
# Users, scopes and request context
# ---------------------------------------------------------------------------


class AdminScope(RbacRecord):
    """A user's administrative position in the state/district/area/unit tree."""

    level: AdminLevel
    state_id: str | None = None
    district_id: str | None = None
    area_id: str | None = None
    unit_id: str | None = None

    @property
    def anchor_location_id(self) -> str | None:
        """Location id for the scope's own level."""
        return {
            AdminLevel.STATE: self.state_id,
            AdminLevel.DISTRICT: self.district_id,
            AdminLevel.AREA: self.area_id,
            AdminLevel.UNIT: self.unit_id,
        }[self.level]


class UserProfile(RbacRecord):
    user_id: str
    account_role: str | None = None
    admin_scope: AdminScope | None = None
    is_active: bool = True


class RecordScope(RbacRecord):
    """Location and owner of the record being accessed."""

    location_id: str | None = None
    owner_id: str | None = None


class RequestContext(RbacRecord):
    timestamp: datetime | None = None
    ip: str | None = None
    scope: RecordScope | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ConditionResult(RbacRecord):
    valid: bool
    reason: str | None = None


class AccessDecision(RbacRecord):
    """Outcome of a permission check with the reason for diagnostics."""

    allowed: bool
    permission: str
    reason: str
    granted_scope: PermissionScope | None = None


class RoleHierarchyNode(RbacRecord):
    level: int
    parent: str | None = None
    children: tuple[str, ...] = ()


__all__ = [
    "AccessDecision",
    "AdminLevel",
    "AdminScope",
    "AllowedHours",
    "AssignmentMeta",
    "ConditionResult",
    "IpRestrictions",
    "PERMISSION_NAME_PATTERN",
    "PermissionConditions",
    "PermissionDefinition",
    "PermissionDependencies",
    "PermissionName",
    "PermissionScope",
    "RbacRecord",
    "RecordScope",
    "RequestContext",
    "RoleAssignment",
    "RoleCategory",
    "RoleDefinition",
    "RoleHierarchyNode",
    "RoleName",
    "TimeRestrictions",
    "UserProfile",
    "Weekday",
]
