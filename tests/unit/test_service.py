"""Service bootstrap, reporting and account-role migration."""

from __future__ import annotations

import pytest

from erp_rbac.core.directory import InMemoryUserDirectory
from erp_rbac.core.rbac.registry import PERMISSIONS, SYSTEM_ROLES
from erp_rbac.core.rbac.types import UserProfile
from erp_rbac.features.rbac import RbacService, initialize_rbac
from erp_rbac.features.rbac.service import MIGRATION_REASON
from erp_rbac.store import InMemoryRbacStore


@pytest.mark.asyncio
async def test_initialize_is_idempotent() -> None:
    store = InMemoryRbacStore()

    first = await initialize_rbac(store)
    assert first.permissions_created == len(PERMISSIONS)
    assert first.roles_created == len(SYSTEM_ROLES)
    assert first.permissions_skipped == first.roles_skipped == 0

    second = await initialize_rbac(store)
    assert second.permissions_created == second.roles_created == 0
    assert second.permissions_skipped == len(PERMISSIONS)
    assert second.roles_skipped == len(SYSTEM_ROLES)
    assert len(await store.list_roles()) == len(SYSTEM_ROLES)


@pytest.mark.asyncio
async def test_initialize_keeps_existing_records(service: RbacService) -> None:
    await service.create_role({"name": "clerk", "level": 2, "category": "custom"})

    report = await service.initialize()

    assert report.roles_created == 0
    assert (await service.get_role("clerk")).is_system is False


@pytest.mark.asyncio
async def test_super_admin_holds_every_permission(service: RbacService) -> None:
    await service.assign_role_to_user("root", "super_admin", "system")

    held = {p.name for p in await service.get_user_permissions("root")}
    assert held == {p.name for p in PERMISSIONS}


@pytest.mark.asyncio
async def test_statistics(service: RbacService) -> None:
    await service.create_role({"name": "clerk", "level": 2, "category": "custom"})
    await service.assign_role_to_user("u-1", "clerk", "system")
    await service.assign_role_to_user("u-2", "beneficiary", "system")
    await service.remove_role_from_user("u-2", "beneficiary", "system")

    stats = await service.get_statistics()

    assert stats.roles_total == len(SYSTEM_ROLES) + 1
    assert stats.roles_system == len(SYSTEM_ROLES)
    assert stats.roles_custom == 1
    assert stats.roles_by_category == {"system": 5, "coordinator": 2, "staff": 1, "custom": 1}
    assert stats.permissions_total == len(PERMISSIONS)
    assert stats.permissions_by_module["users"] == 8
    assert list(stats.permissions_by_module) == sorted(stats.permissions_by_module)
    assert stats.assignments_total == 2
    assert stats.assignments_active == 1
    assert '"roles_total"' in stats.json_text()


@pytest.mark.asyncio
async def test_migrate_account_roles(service: RbacService, users: InMemoryUserDirectory) -> None:
    users.add(UserProfile(user_id="u-none"))
    users.add(UserProfile(user_id="u-bad", account_role="ghost"))
    await service.assign_role_to_user("u-unit", "unit_admin", "system")

    report = await service.migrate_account_roles(
        ["u-ben", "u-district", "u-unit", "u-none", "u-bad", "u-missing"]
    )

    assert report.migrated == ["u-ben", "u-district"]
    assert report.skipped == ["u-unit", "u-none"]
    assert set(report.failed) == {"u-bad", "u-missing"}
    assert report.failed["u-missing"] == "User not found"

    [grant] = await service.get_user_roles("u-district")
    assert grant.role.name == "district_admin"
    assert grant.assignment.is_primary is True
    assert grant.assignment.reason == MIGRATION_REASON
    assert grant.assignment.assigned_by == "system"

    again = await service.migrate_account_roles(["u-ben"], actor_id="u-state")
    assert again.skipped == ["u-ben"]


@pytest.mark.asyncio
async def test_migrate_requires_a_user_directory() -> None:
    rbac = RbacService(InMemoryRbacStore(), timezone="UTC")

    with pytest.raises(RuntimeError, match="user directory"):
        await rbac.migrate_account_roles(["u-1"])
