"""User-role assignments: duplicates, expiry, primaries and limits."""

from __future__ import annotations

from datetime import timedelta

import pytest

from erp_rbac.core.rbac.errors import (
    ConflictError,
    DuplicateAssignmentError,
    NotFoundError,
    ValidationError,
)
from erp_rbac.features.rbac import RbacService
from erp_rbac.features.rbac.assignments import EXPIRED_REASON, SYSTEM_ACTOR
from erp_rbac.store import InMemoryRbacStore


@pytest.mark.asyncio
async def test_assign_records_metadata(service: RbacService, clock) -> None:
    assignment = await service.assign_role_to_user(
        "u-1", "beneficiary", "u-state", {"reason": "Registered", "is_primary": True}
    )

    assert assignment.user_id == "u-1"
    assert assignment.assigned_by == "u-state"
    assert assignment.assigned_at == clock.now
    assert assignment.valid_from == clock.now
    assert assignment.reason == "Registered"
    assert assignment.is_primary is True
    assert assignment.is_active is True


@pytest.mark.asyncio
async def test_duplicate_active_assignment_is_rejected(service: RbacService) -> None:
    await service.assign_role_to_user("u-1", "unit_admin", "u-state")

    with pytest.raises(DuplicateAssignmentError, match="already has this role"):
        await service.assign_role_to_user("u-1", "unit_admin", "u-district")

    assert len(await service.assignments.list_for_user("u-1", include_inactive=True)) == 1


@pytest.mark.asyncio
async def test_unknown_role_is_not_found(service: RbacService) -> None:
    with pytest.raises(NotFoundError):
        await service.assign_role_to_user("u-1", "ghost", "u-state")


@pytest.mark.asyncio
async def test_expiry_must_follow_start(service: RbacService, clock) -> None:
    with pytest.raises(ValidationError, match="expires_at"):
        await service.assign_role_to_user(
            "u-1", "unit_admin", "u-state", {"expires_at": clock.now}
        )
    with pytest.raises(ValidationError):
        await service.assign_role_to_user(
            "u-1",
            "unit_admin",
            "u-state",
            {
                "valid_from": clock.now + timedelta(days=2),
                "expires_at": clock.now + timedelta(days=1),
            },
        )


@pytest.mark.asyncio
async def test_expired_assignment_stops_granting_and_can_be_replaced(
    service: RbacService, clock
) -> None:
    first = await service.assign_role_to_user(
        "u-1", "unit_admin", "u-state", {"expires_at": clock.now + timedelta(hours=1)}
    )
    assert await service.check_permission("u-1", "roles.read")

    clock.advance(hours=2)
    assert not await service.check_permission("u-1", "roles.read")
    assert await service.assignments.list_active("u-1") == []

    second = await service.assign_role_to_user("u-1", "unit_admin", "u-state")
    assert second.id != first.id

    history = {a.id: a for a in await service.assignments.list_for_user("u-1", include_inactive=True)}
    assert history[first.id].is_active is False
    assert history[first.id].removal_reason == EXPIRED_REASON
    assert history[first.id].removed_by == SYSTEM_ACTOR
    assert history[second.id].is_active is True


@pytest.mark.asyncio
async def test_future_assignment_is_not_yet_effective(service: RbacService, clock) -> None:
    await service.assign_role_to_user(
        "u-1", "unit_admin", "u-state", {"valid_from": clock.now + timedelta(days=1)}
    )

    assert not await service.check_permission("u-1", "roles.read")
    clock.advance(days=1)
    assert await service.check_permission("u-1", "roles.read")


@pytest.mark.asyncio
async def test_cleanup_expired_is_idempotent(service: RbacService, clock) -> None:
    await service.assign_role_to_user(
        "u-1", "unit_admin", "u-state", {"expires_at": clock.now + timedelta(minutes=30)}
    )
    await service.assign_role_to_user("u-2", "unit_admin", "u-state")
    await service.assign_role_to_user(
        "u-3", "beneficiary", "u-state", {"expires_at": clock.now + timedelta(days=30)}
    )

    clock.advance(hours=1)
    assert await service.cleanup_expired_assignments() == 1
    assert await service.cleanup_expired_assignments() == 0

    stats = await service.get_statistics()
    assert stats.assignments_total == 3
    assert stats.assignments_active == 2


@pytest.mark.asyncio
async def test_new_primary_demotes_the_old_one(service: RbacService) -> None:
    await service.assign_role_to_user("u-1", "beneficiary", "u-state", {"is_primary": True})
    await service.assign_role_to_user("u-1", "unit_admin", "u-state", {"is_primary": True})

    grants = await service.get_user_roles("u-1")
    assert [grant.role.name for grant in grants] == ["unit_admin", "beneficiary"]
    assert [grant.assignment.is_primary for grant in grants] == [True, False]


@pytest.mark.asyncio
async def test_user_roles_sorted_by_level_after_primary(service: RbacService) -> None:
    await service.assign_role_to_user("u-1", "unit_admin", "u-state")
    await service.assign_role_to_user("u-1", "beneficiary", "u-state", {"is_primary": True})
    await service.assign_role_to_user("u-1", "state_admin", "system")

    grants = await service.get_user_roles("u-1")
    assert [grant.role.name for grant in grants] == ["beneficiary", "state_admin", "unit_admin"]


@pytest.mark.asyncio
async def test_max_users_limit(service: RbacService) -> None:
    await service.create_role({"name": "auditor", "level": 4, "category": "custom", "max_users": 1})
    await service.assign_role_to_user("u-1", "auditor", "u-state")

    with pytest.raises(ConflictError, match="maximum user limit"):
        await service.assign_role_to_user("u-2", "auditor", "u-state")

    await service.remove_role_from_user("u-1", "auditor", "u-state")
    await service.assign_role_to_user("u-2", "auditor", "u-state")


@pytest.mark.asyncio
async def test_remove_role(service: RbacService, clock) -> None:
    await service.assign_role_to_user("u-1", "unit_admin", "u-state")

    removed = await service.remove_role_from_user("u-1", "unit_admin", "u-district", "Transferred")
    assert removed.is_active is False
    assert removed.removed_by == "u-district"
    assert removed.removed_at == clock.now
    assert removed.removal_reason == "Transferred"

    with pytest.raises(NotFoundError, match="does not have this role"):
        await service.remove_role_from_user("u-1", "unit_admin", "u-district")

    # Re-assigning after removal starts a fresh assignment.
    await service.assign_role_to_user("u-1", "unit_admin", "u-state")
    history = await service.assignments.list_for_user("u-1", include_inactive=True)
    assert sorted(a.is_active for a in history) == [False, True]


@pytest.mark.asyncio
async def test_expired_holder_frees_its_seat(service: RbacService, clock) -> None:
    await service.create_role({"name": "auditor", "level": 4, "category": "custom", "max_users": 1})
    await service.assign_role_to_user(
        "u-1", "auditor", "u-state", {"expires_at": clock.now + timedelta(minutes=5)}
    )

    clock.advance(hours=1)
    await service.assign_role_to_user("u-2", "auditor", "u-state")

    # The expired row is only flagged by the sweep, not by the seat count.
    [stale] = await service.assignments.list_for_user("u-1")
    assert stale.is_active is True
    assert await service.cleanup_expired_assignments() == 1


@pytest.mark.asyncio
async def test_future_holder_keeps_its_seat(service: RbacService, clock) -> None:
    await service.create_role({"name": "auditor", "level": 4, "category": "custom", "max_users": 1})
    await service.assign_role_to_user(
        "u-1", "auditor", "u-state", {"valid_from": clock.now + timedelta(days=1)}
    )

    with pytest.raises(ConflictError, match="maximum user limit"):
        await service.assign_role_to_user("u-2", "auditor", "u-state")


@pytest.mark.asyncio
async def test_restricted_roles_need_an_entitled_assigner(service: RbacService, clock) -> None:
    with pytest.raises(ConflictError, match="permission to assign"):
        await service.assign_role_to_user("u-1", "super_admin", "u-district")

    await service.assign_role_to_user("u-boss", "state_admin", SYSTEM_ACTOR)
    await service.assign_role_to_user("u-1", "district_admin", "u-boss")
    with pytest.raises(ConflictError, match="permission to assign"):
        await service.assign_role_to_user("u-2", "state_admin", "u-boss")

    await service.assign_role_to_user(
        "u-temp", "state_admin", SYSTEM_ACTOR, {"expires_at": clock.now + timedelta(hours=1)}
    )
    clock.advance(hours=2)
    with pytest.raises(ConflictError, match="permission to assign"):
        await service.assign_role_to_user("u-2", "district_admin", "u-temp")

    # Unrestricted roles stay open to any assigner.
    await service.assign_role_to_user("u-2", "unit_admin", "u-temp")
    assert [a.role_name for a in await service.assignments.list_active("u-2")] == ["unit_admin"]


@pytest.mark.asyncio
async def test_rejected_insert_keeps_the_current_primary(
    service: RbacService, store: InMemoryRbacStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    await service.assign_role_to_user("u-1", "beneficiary", "u-state", {"is_primary": True})
    await service.assign_role_to_user("u-1", "unit_admin", "u-state")

    # A concurrent writer got there first: the pre-check sees nothing, the insert conflicts.
    async def _not_found(user_id: str, role_name: str) -> None:
        return None

    monkeypatch.setattr(store, "get_active_assignment", _not_found)
    with pytest.raises(DuplicateAssignmentError):
        await service.assign_role_to_user("u-1", "unit_admin", "u-state", {"is_primary": True})

    primaries = [a.role_name for a in await service.assignments.list_active("u-1") if a.is_primary]
    assert primaries == ["beneficiary"]
