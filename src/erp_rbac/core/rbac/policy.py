"""Static RBAC policy definitions (scope precedence, implication rules, etc.)."""

from __future__ import annotations

from erp_rbac.core.rbac.types import PermissionScope

# Most permissive first; the engine grants on the first scope that passes.
SCOPE_PRECEDENCE: tuple[PermissionScope, ...] = (
    PermissionScope.ALL,
    PermissionScope.REGIONAL,
    PermissionScope.OWN,
)

SCOPE_RANK: dict[PermissionScope, int] = {
    scope: len(SCOPE_PRECEDENCE) - index for index, scope in enumerate(SCOPE_PRECEDENCE)
}

# Permissions granted automatically alongside the key permission
SEED_IMPLICATIONS: dict[str, tuple[str, ...]] = {
    "permissions.manage": ("permissions.read",),
    "forms.manage": ("forms.read", "forms.create", "forms.update"),
    "projects.manage": ("projects.read.all", "projects.update.all"),
    "schemes.manage": ("schemes.read.all",),
    "finances.manage": ("finances.read.all",),
    "settings.update": ("settings.read",),
    "users.update.all": ("users.read.all",),
}

# Permissions that only work when the listed permissions are also held
SEED_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    "roles.assign": ("roles.read",),
    "applications.approve": ("applications.read.regional",),
    "donors.verify": ("donors.read",),
}

__all__ = ["SCOPE_PRECEDENCE", "SCOPE_RANK", "SEED_IMPLICATIONS", "SEED_REQUIREMENTS"]
