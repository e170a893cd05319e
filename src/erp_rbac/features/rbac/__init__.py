"""RBAC feature: registries, assignments, resolution engine and service facade."""

from .assignments import AssignmentStore
from .engine import ResolutionEngine
from .permissions import PermissionRegistry
from .roles import RoleRegistry
from .service import (
    MigrationReport,
    RbacService,
    RbacStatistics,
    SeedReport,
    UserRoleGrant,
    initialize_rbac,
)

__all__ = [
    "AssignmentStore",
    "MigrationReport",
    "PermissionRegistry",
    "RbacService",
    "RbacStatistics",
    "ResolutionEngine",
    "RoleRegistry",
    "SeedReport",
    "UserRoleGrant",
    "initialize_rbac",
]
