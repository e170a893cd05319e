"""Validation rules on RBAC records."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from erp_rbac.core.rbac.errors import ValidationError
from erp_rbac.core.rbac.types import (
    AdminLevel,
    AdminScope,
    AllowedHours,
    AssignmentMeta,
    IpRestrictions,
    PermissionDefinition,
    PermissionScope,
    RoleAssignment,
    RoleCategory,
    RoleDefinition,
    TimeRestrictions,
    Weekday,
)
from erp_rbac.core.rbac.validation import coerce_record


def _permission(**overrides) -> dict:
    payload = {
        "name": "reports.read.regional",
        "module": "reports",
        "resource": "reports",
        "action": "read",
        "scope": "regional",
    }
    payload.update(overrides)
    return payload


def test_permission_labels_default_from_name_and_action() -> None:
    permission = PermissionDefinition.model_validate(_permission())

    assert permission.display_name == "reports.read.regional"
    assert permission.category == "read"
    assert permission.scope is PermissionScope.REGIONAL
    assert permission.dependencies.requires == ()


@pytest.mark.parametrize("name", ["Reports.read", "reports", "reports..read", "1reports.read"])
def test_permission_name_must_be_dotted_lowercase(name: str) -> None:
    with pytest.raises(PydanticValidationError):
        PermissionDefinition.model_validate(_permission(name=name))


def test_permission_cannot_depend_on_itself() -> None:
    with pytest.raises(PydanticValidationError, match="cannot depend on itself"):
        PermissionDefinition.model_validate(
            _permission(dependencies={"requires": ["reports.read.regional"]})
        )


def test_dependencies_are_deduplicated_in_order() -> None:
    permission = PermissionDefinition.model_validate(
        _permission(
            dependencies={"implies": ["reports.read", "reports.export", "reports.read"]}
        )
    )

    assert permission.dependencies.implies == ("reports.read", "reports.export")


def test_role_level_is_a_bounded_integer() -> None:
    RoleDefinition(name="clerk", level=0, category=RoleCategory.CUSTOM)
    RoleDefinition(name="clerk", level=10, category=RoleCategory.CUSTOM)

    for level in (-1, 11, "5"):
        with pytest.raises(PydanticValidationError):
            RoleDefinition.model_validate({"name": "clerk", "level": level, "category": "custom"})


def test_role_cannot_parent_itself() -> None:
    with pytest.raises(PydanticValidationError, match="own parent"):
        RoleDefinition(name="clerk", level=2, category=RoleCategory.CUSTOM, parent="clerk")


def test_role_permissions_are_deduplicated() -> None:
    role = RoleDefinition(
        name="clerk",
        level=2,
        category=RoleCategory.CUSTOM,
        permissions=("forms.read", "forms.create", "forms.read"),
    )

    assert role.permissions == ("forms.read", "forms.create")
    assert role.display_name == "clerk"


def test_allowed_hours_window_is_half_open() -> None:
    hours = AllowedHours(start=9, end=17)

    assert hours.contains(9)
    assert hours.contains(16)
    assert not hours.contains(17)
    assert not hours.contains(8)

    with pytest.raises(PydanticValidationError):
        AllowedHours(start=17, end=9)


def test_time_restrictions_normalise_days_and_check_timezone() -> None:
    rules = TimeRestrictions.model_validate(
        {"allowed_days": ["Monday", " FRIDAY "], "timezone": "Asia/Kolkata"}
    )
    assert rules.allowed_days == (Weekday.MONDAY, Weekday.FRIDAY)

    with pytest.raises(PydanticValidationError, match="Unknown timezone"):
        TimeRestrictions(timezone="Mars/Olympus_Mons")


def test_weekday_of_datetime() -> None:
    assert Weekday.of(datetime(2025, 1, 7, 10, tzinfo=UTC)) is Weekday.TUESDAY
    assert Weekday.of(datetime(2025, 1, 12)) is Weekday.SUNDAY


def test_ip_restrictions_accept_addresses_and_networks() -> None:
    rules = IpRestrictions(allowed_ips=("10.0.0.0/8", "192.168.1.5", "10.0.0.0/8"))
    assert rules.allowed_ips == ("10.0.0.0/8", "192.168.1.5")

    with pytest.raises(PydanticValidationError, match="Invalid IP"):
        IpRestrictions(blocked_ips=("not-an-ip",))


def test_assignment_datetimes_are_made_aware() -> None:
    meta = AssignmentMeta(expires_at=datetime(2025, 2, 1, 0, 0))
    assert meta.expires_at == datetime(2025, 2, 1, tzinfo=UTC)

    offset = timezone(timedelta(hours=5, minutes=30))
    assignment = RoleAssignment(
        user_id="u-1",
        role_name="beneficiary",
        valid_from=datetime(2025, 1, 7, 15, 30, tzinfo=offset),
    )
    assert assignment.valid_from == datetime(2025, 1, 7, 10, 0, tzinfo=UTC)


def test_assignment_effective_window() -> None:
    now = datetime(2025, 1, 7, 10, tzinfo=UTC)
    assignment = RoleAssignment(
        user_id="u-1",
        role_name="beneficiary",
        valid_from=now - timedelta(days=1),
        expires_at=now + timedelta(hours=1),
    )

    assert assignment.is_effective(now)
    assert not assignment.is_expired(now + timedelta(hours=1))
    assert assignment.is_expired(now + timedelta(hours=1, seconds=1))
    assert not assignment.is_effective(now - timedelta(days=2))
    assert not assignment.model_copy(update={"is_active": False}).is_effective(now)


def test_admin_scope_anchor_follows_level() -> None:
    scope = AdminScope(level=AdminLevel.AREA, state_id="kl", district_id="kl-tvm", area_id="a1")
    assert scope.anchor_location_id == "a1"
    assert AdminScope(level=AdminLevel.STATE).anchor_location_id is None


def test_coerce_record_reports_rbac_validation_error() -> None:
    with pytest.raises(ValidationError, match="level"):
        coerce_record(RoleDefinition, {"name": "clerk", "level": 42, "category": "custom"})

    with pytest.raises(ValidationError, match="Expected a mapping"):
        coerce_record(RoleDefinition, 42)  # type: ignore[arg-type]

    role = RoleDefinition(name="clerk", level=1, category=RoleCategory.CUSTOM)
    assert coerce_record(RoleDefinition, role) is role


def test_records_are_frozen() -> None:
    role = RoleDefinition(name="clerk", level=1, category=RoleCategory.CUSTOM)
    with pytest.raises(PydanticValidationError):
        role.level = 3  # type: ignore[misc]
