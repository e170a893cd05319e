"""Shared pytest fixtures for RBAC tests."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio

from erp_rbac.core.directory import InMemoryLocationHierarchy, InMemoryUserDirectory
from erp_rbac.core.rbac.types import AdminLevel, AdminScope, UserProfile
from erp_rbac.features.rbac import RbacService
from erp_rbac.settings import reload_settings
from erp_rbac.store import InMemoryRbacStore

# Tuesday morning in UTC.
FIXED_NOW = datetime(2025, 1, 7, 10, 0, tzinfo=UTC)


def pytest_collection_modifyitems(config, items) -> None:
    for item in items:
        path_str = str(Path(str(item.fspath)))
        if "/tests/integration/" in path_str:
            item.add_marker(pytest.mark.integration)
        elif "/tests/unit/" in path_str:
            item.add_marker(pytest.mark.unit)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture(autouse=True)
def _reset_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep ERP_RBAC_* overrides and the settings cache local to each test."""

    for var in (
        "ERP_RBAC_DATABASE_URL",
        "ERP_RBAC_DEFAULT_TIMEZONE",
        "ERP_RBAC_LOGGING_LEVEL",
        "ERP_RBAC_SEED_ON_STARTUP",
    ):
        monkeypatch.delenv(var, raising=False)
    reload_settings()
    yield
    monkeypatch.undo()
    reload_settings()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture()
def locations() -> InMemoryLocationHierarchy:
    """Kerala -> Thiruvananthapuram -> area A1 -> unit U1, plus Ernakulam."""

    return InMemoryLocationHierarchy(
        {
            "kl": None,
            "kl-tvm": "kl",
            "kl-tvm-a1": "kl-tvm",
            "kl-tvm-a1-u1": "kl-tvm-a1",
            "kl-ekm": "kl",
        }
    )


@pytest.fixture()
def users() -> InMemoryUserDirectory:
    return InMemoryUserDirectory(
        [
            UserProfile(
                user_id="u-unit",
                account_role="unit_admin",
                admin_scope=AdminScope(
                    level=AdminLevel.UNIT,
                    state_id="kl",
                    district_id="kl-tvm",
                    area_id="kl-tvm-a1",
                    unit_id="kl-tvm-a1-u1",
                ),
            ),
            UserProfile(
                user_id="u-district",
                account_role="district_admin",
                admin_scope=AdminScope(
                    level=AdminLevel.DISTRICT, state_id="kl", district_id="kl-tvm"
                ),
            ),
            UserProfile(
                user_id="u-state",
                account_role="state_admin",
                admin_scope=AdminScope(level=AdminLevel.STATE),
            ),
            UserProfile(user_id="u-ben", account_role="beneficiary"),
            UserProfile(user_id="u-gone", account_role="beneficiary", is_active=False),
        ]
    )


@pytest.fixture()
def store() -> InMemoryRbacStore:
    return InMemoryRbacStore()


@pytest_asyncio.fixture()
async def service(
    store: InMemoryRbacStore,
    users: InMemoryUserDirectory,
    locations: InMemoryLocationHierarchy,
    clock: FrozenClock,
) -> RbacService:
    """RBAC service over a seeded in-memory store, evaluating in UTC."""

    rbac = RbacService(
        store,
        users=users,
        locations=locations,
        clock=clock,
        timezone="UTC",
    )
    await rbac.initialize()
    return rbac
