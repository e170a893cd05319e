"""External collaborators consumed by the resolution engine.

The user directory and the location hierarchy live outside the RBAC core.
In-memory implementations are provided for wiring and tests.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Protocol, runtime_checkable

from erp_rbac.core.rbac.errors import CycleError
from erp_rbac.core.rbac.types import UserProfile


@runtime_checkable
class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> UserProfile | None: ...


@runtime_checkable
class LocationHierarchy(Protocol):
    async def is_ancestor_or_equal(self, ancestor_id: str, location_id: str) -> bool: ...


class InMemoryUserDirectory:
    """Dictionary-backed user directory."""

    def __init__(self, users: Iterable[UserProfile] = ()) -> None:
        self._users: dict[str, UserProfile] = {user.user_id: user for user in users}

    def add(self, user: UserProfile) -> None:
        self._users[user.user_id] = user

    async def get_user(self, user_id: str) -> UserProfile | None:
        return self._users.get(user_id)


class InMemoryLocationHierarchy:
    """Location tree built from a ``child -> parent`` mapping.

    Roots map to ``None`` or are simply absent from the mapping.
    """

    def __init__(self, parents: Mapping[str, str | None] | None = None) -> None:
        self._parents: dict[str, str | None] = {}
        for child, parent in (parents or {}).items():
            self.add(child, parent)

    def add(self, location_id: str, parent_id: str | None = None) -> None:
        if parent_id is not None and location_id in self._ancestry(parent_id):
            raise CycleError(f"Location '{location_id}' cannot be its own ancestor")
        self._parents[location_id] = parent_id

    def _ancestry(self, location_id: str) -> list[str]:
        chain: list[str] = []
        current: str | None = location_id
        while current is not None and current not in chain:
            chain.append(current)
            current = self._parents.get(current)
        return chain

    async def is_ancestor_or_equal(self, ancestor_id: str, location_id: str) -> bool:
        return ancestor_id in self._ancestry(location_id)


__all__ = [
    "InMemoryLocationHierarchy",
    "InMemoryUserDirectory",
    "LocationHierarchy",
    "UserDirectory",
]
