from __future__ import annotations

import pytest

from erp_rbac.core.directory import (
    InMemoryLocationHierarchy,
    InMemoryUserDirectory,
    LocationHierarchy,
    UserDirectory,
)
from erp_rbac.core.rbac.errors import CycleError
from erp_rbac.core.rbac.types import UserProfile


@pytest.mark.asyncio
async def test_location_ancestry(locations: InMemoryLocationHierarchy) -> None:
    assert isinstance(locations, LocationHierarchy)
    assert await locations.is_ancestor_or_equal("kl", "kl-tvm-a1-u1")
    assert await locations.is_ancestor_or_equal("kl-tvm", "kl-tvm")
    assert not await locations.is_ancestor_or_equal("kl-tvm", "kl-ekm")
    assert not await locations.is_ancestor_or_equal("kl-tvm-a1-u1", "kl")
    assert not await locations.is_ancestor_or_equal("kl", "unknown")


def test_location_cycles_are_rejected(locations: InMemoryLocationHierarchy) -> None:
    with pytest.raises(CycleError):
        locations.add("kl", "kl-tvm-a1")
    with pytest.raises(CycleError):
        locations.add("kl-ekm", "kl-ekm")


@pytest.mark.asyncio
async def test_user_directory() -> None:
    directory = InMemoryUserDirectory([UserProfile(user_id="u-1")])
    directory.add(UserProfile(user_id="u-2", account_role="beneficiary"))

    assert isinstance(directory, UserDirectory)
    assert (await directory.get_user("u-2")).account_role == "beneficiary"
    assert await directory.get_user("u-3") is None
