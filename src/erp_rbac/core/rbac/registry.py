"""Canonical permission and system role catalog.

``initialize_rbac`` seeds these records into a store; keep names stable so
feature teams can reference permissions consistently.
"""

from __future__ import annotations

from erp_rbac.core.rbac.policy import SEED_IMPLICATIONS, SEED_REQUIREMENTS
from erp_rbac.core.rbac.types import (
    PermissionDefinition,
    PermissionDependencies,
    PermissionScope,
    RoleCategory,
    RoleDefinition,
)

ALL = PermissionScope.ALL
REGIONAL = PermissionScope.REGIONAL
OWN = PermissionScope.OWN


def _permission(
    name: str,
    scope: PermissionScope,
    label: str,
    description: str,
    *,
    category: str | None = None,
) -> PermissionDefinition:
    parts = name.split(".")
    return PermissionDefinition(
        name=name,
        display_name=label,
        description=description,
        module=parts[0],
        category=category or parts[1],
        resource=parts[0],
        action=parts[1],
        scope=scope,
        dependencies=PermissionDependencies(
            requires=SEED_REQUIREMENTS.get(name, ()),
            implies=SEED_IMPLICATIONS.get(name, ()),
        ),
        is_system=True,
    )


PERMISSIONS: tuple[PermissionDefinition, ...] = (
    # Users ----------------------------------------------------------------
    _permission("users.create", REGIONAL, "Create users", "Create user accounts in scope."),
    _permission("users.read.all", ALL, "Read all users", "View every user account."),
    _permission("users.read.regional", REGIONAL, "Read regional users", "View users in scope."),
    _permission("users.read.own", OWN, "Read own profile", "View the caller's own account."),
    _permission("users.update.all", ALL, "Update all users", "Edit any user account."),
    _permission("users.update.regional", REGIONAL, "Update regional users", "Edit users in scope."),
    _permission("users.update.own", OWN, "Update own profile", "Edit the caller's own account."),
    _permission("users.delete", REGIONAL, "Delete users", "Deactivate user accounts in scope."),
    # Roles and permissions --------------------------------------------------
    _permission("roles.create", ALL, "Create roles", "Define custom roles."),
    _permission("roles.read", ALL, "Read roles", "Inspect role definitions."),
    _permission("roles.update", ALL, "Update roles", "Edit modifiable roles."),
    _permission("roles.delete", ALL, "Delete roles", "Remove deletable, unassigned roles."),
    _permission(
        "roles.assign",
        REGIONAL,
        "Assign roles",
        "Assign and remove roles for users in scope.",
        category="manage",
    ),
    _permission("permissions.read", ALL, "Read permissions", "Inspect the permission catalog."),
    _permission("permissions.manage", ALL, "Manage permissions", "Edit the permission catalog."),
    # Beneficiaries ----------------------------------------------------------
    _permission("beneficiaries.create", REGIONAL, "Create beneficiaries", "Register beneficiaries in scope."),
    _permission("beneficiaries.read.all", ALL, "Read all beneficiaries", "View every beneficiary."),
    _permission("beneficiaries.read.regional", REGIONAL, "Read regional beneficiaries", "View beneficiaries in scope."),
    _permission("beneficiaries.read.own", OWN, "Read own beneficiary profile", "View the caller's beneficiary record."),
    _permission("beneficiaries.update.regional", REGIONAL, "Update regional beneficiaries", "Edit beneficiaries in scope."),
    _permission("beneficiaries.update.own", OWN, "Update own beneficiary profile", "Edit the caller's beneficiary record."),
    # Applications -----------------------------------------------------------
    _permission("applications.create", OWN, "Create applications", "Submit applications for schemes."),
    _permission("applications.read.all", ALL, "Read all applications", "View every application."),
    _permission("applications.read.regional", REGIONAL, "Read regional applications", "View applications in scope."),
    _permission("applications.read.own", OWN, "Read own applications", "View the caller's applications."),
    _permission("applications.update.regional", REGIONAL, "Update regional applications", "Edit applications in scope."),
    _permission("applications.approve", REGIONAL, "Approve applications", "Approve or reject applications in scope."),
    # Projects and schemes ---------------------------------------------------
    _permission("projects.create", ALL, "Create projects", "Create new projects."),
    _permission("projects.read.all", ALL, "Read all projects", "View every project."),
    _permission("projects.read.assigned", OWN, "Read assigned projects", "View projects assigned to the caller."),
    _permission("projects.update.all", ALL, "Update all projects", "Edit any project."),
    _permission("projects.update.assigned", OWN, "Update assigned projects", "Edit projects assigned to the caller."),
    _permission("projects.manage", ALL, "Manage projects", "Full project administration."),
    _permission("schemes.create", ALL, "Create schemes", "Create new schemes."),
    _permission("schemes.read.all", ALL, "Read all schemes", "View every scheme."),
    _permission("schemes.read.assigned", OWN, "Read assigned schemes", "View schemes assigned to the caller."),
    _permission("schemes.update.assigned", OWN, "Update assigned schemes", "Edit schemes assigned to the caller."),
    _permission("schemes.manage", ALL, "Manage schemes", "Full scheme administration."),
    # Reports ----------------------------------------------------------------
    _permission("reports.read", REGIONAL, "Read reports", "View reports in scope."),
    _permission("reports.create", REGIONAL, "Create reports", "Create reports in scope."),
    _permission("reports.update", REGIONAL, "Update reports", "Edit reports in scope."),
    _permission("reports.delete", REGIONAL, "Delete reports", "Remove reports in scope."),
    _permission("reports.read.all", ALL, "Read all reports", "View every report."),
    _permission("reports.read.regional", REGIONAL, "Read regional reports", "View regional reports."),
    _permission("reports.export", REGIONAL, "Export reports", "Export report data in scope."),
    # Finances, donors and donations -----------------------------------------
    _permission("finances.read.all", ALL, "Read all finances", "View every financial record."),
    _permission("finances.read.regional", REGIONAL, "Read regional finances", "View financial records in scope."),
    _permission("finances.manage", ALL, "Manage finances", "Full financial administration."),
    _permission("donors.create", REGIONAL, "Create donors", "Register donors in scope."),
    _permission("donors.read", REGIONAL, "Read donors", "View donors."),
    _permission("donors.read.regional", REGIONAL, "Read regional donors", "View donors in scope."),
    _permission("donors.read.all", ALL, "Read all donors", "View every donor."),
    _permission("donors.update.regional", REGIONAL, "Update regional donors", "Edit donors in scope."),
    _permission("donors.delete", REGIONAL, "Delete donors", "Remove donors in scope."),
    _permission("donors.verify", REGIONAL, "Verify donors", "Verify donor identity in scope."),
    _permission("donations.create", REGIONAL, "Record donations", "Record donations in scope."),
    _permission("donations.read.all", ALL, "Read all donations", "View every donation."),
    _permission("donations.read.regional", REGIONAL, "Read regional donations", "View donations in scope."),
    _permission("donations.update.regional", REGIONAL, "Update regional donations", "Edit donations in scope."),
    # Communications and administration --------------------------------------
    _permission("communications.send", REGIONAL, "Send communications", "Send SMS and WhatsApp messages in scope."),
    _permission("settings.read", ALL, "Read settings", "View system settings."),
    _permission("settings.update", ALL, "Update settings", "Change system settings."),
    _permission("audit.read", ALL, "Read audit log", "View the activity log."),
    _permission("forms.create", ALL, "Create forms", "Build application forms."),
    _permission("forms.read", ALL, "Read forms", "View application forms."),
    _permission("forms.update", ALL, "Update forms", "Edit application forms."),
    _permission("forms.delete", ALL, "Delete forms", "Remove application forms."),
    _permission("forms.manage", ALL, "Manage forms", "Publish and configure forms."),
    _permission("locations.create", ALL, "Create locations", "Add locations to the hierarchy."),
    _permission("locations.read", ALL, "Read locations", "View the location hierarchy."),
    _permission("locations.update", ALL, "Update locations", "Edit locations."),
    _permission("locations.delete", ALL, "Delete locations", "Remove locations."),
    _permission("dashboard.read.all", ALL, "Read global dashboard", "View system-wide dashboards."),
    _permission("dashboard.read.regional", REGIONAL, "Read regional dashboard", "View dashboards in scope."),
    _permission("system.debug", ALL, "Debug system", "Access debugging tools."),
    _permission("system.monitor", ALL, "Monitor system", "View system health."),
    # Documents and interviews -----------------------------------------------
    _permission("documents.create", REGIONAL, "Upload documents", "Upload documents in scope."),
    _permission("documents.read.all", ALL, "Read all documents", "View every document."),
    _permission("documents.read.regional", REGIONAL, "Read regional documents", "View documents in scope."),
    _permission("documents.update", REGIONAL, "Update documents", "Edit documents in scope."),
    _permission("documents.delete", REGIONAL, "Delete documents", "Remove documents in scope."),
    _permission("interviews.schedule", REGIONAL, "Schedule interviews", "Schedule beneficiary interviews."),
    _permission("interviews.read", REGIONAL, "Read interviews", "View interviews in scope."),
    _permission("interviews.update", REGIONAL, "Update interviews", "Record interview outcomes."),
    _permission("interviews.cancel", REGIONAL, "Cancel interviews", "Cancel scheduled interviews."),
)

PERMISSION_REGISTRY: dict[str, PermissionDefinition] = {
    definition.name: definition for definition in PERMISSIONS
}


def _system_role(
    name: str,
    display_name: str,
    description: str,
    *,
    level: int,
    category: RoleCategory,
    permissions: tuple[str, ...],
    parent: str | None = None,
    max_users: int | None = None,
    assignable_by: tuple[str, ...] = (),
) -> RoleDefinition:
    return RoleDefinition(
        name=name,
        display_name=display_name,
        description=description,
        level=level,
        category=category,
        permissions=permissions,
        parent=parent,
        is_system=True,
        is_deletable=False,
        is_modifiable=False,
        max_users=max_users,
        assignable_by=assignable_by,
        created_by="system",
    )


# Parents come before children so seeding can validate each parent reference.
SYSTEM_ROLES: tuple[RoleDefinition, ...] = (
    _system_role(
        "super_admin",
        "Super Administrator",
        "Full system access with all permissions",
        level=10,
        category=RoleCategory.SYSTEM,
        permissions=tuple(PERMISSION_REGISTRY),
        max_users=5,
        assignable_by=("super_admin",),
    ),
    _system_role(
        "unit_admin",
        "Unit Administrator",
        "Unit-level administrative access",
        level=6,
        category=RoleCategory.SYSTEM,
        permissions=(
            "users.read.regional",
            "roles.read",
            "beneficiaries.create",
            "beneficiaries.read.regional",
            "beneficiaries.update.regional",
            "applications.read.regional",
            "applications.update.regional",
            "applications.approve",
            "projects.read.assigned",
            "schemes.read.assigned",
            "reports.read.regional",
        ),
        max_users=500,
    ),
    _system_role(
        "area_admin",
        "Area Administrator",
        "Area-level administrative access",
        level=7,
        category=RoleCategory.SYSTEM,
        parent="unit_admin",
        permissions=(
            "users.create",
            "users.update.regional",
            "roles.assign",
            "donors.create",
            "donors.read",
            "donors.read.regional",
            "donors.update.regional",
            "donations.create",
            "donations.read.regional",
            "donations.update.regional",
            "communications.send",
        ),
        max_users=100,
    ),
    _system_role(
        "district_admin",
        "District Administrator",
        "District-level administrative access",
        level=8,
        category=RoleCategory.SYSTEM,
        parent="area_admin",
        permissions=(
            "projects.read.all",
            "schemes.read.all",
            "reports.export",
            "finances.read.regional",
            "donors.verify",
        ),
        max_users=50,
        assignable_by=("super_admin", "state_admin"),
    ),
    _system_role(
        "state_admin",
        "State Administrator",
        "State-level administrative access",
        level=9,
        category=RoleCategory.SYSTEM,
        parent="district_admin",
        permissions=(
            "users.read.all",
            "users.read.own",
            "users.update.all",
            "users.update.own",
            "users.delete",
            "roles.create",
            "roles.update",
            "roles.delete",
            "permissions.read",
            "permissions.manage",
            "beneficiaries.read.all",
            "beneficiaries.read.own",
            "beneficiaries.update.own",
            "applications.create",
            "applications.read.all",
            "applications.read.own",
            "projects.create",
            "projects.update.all",
            "projects.update.assigned",
            "projects.manage",
            "schemes.create",
            "schemes.update.assigned",
            "schemes.manage",
            "reports.read",
            "reports.create",
            "reports.update",
            "reports.delete",
            "reports.read.all",
            "finances.read.all",
            "finances.manage",
            "donors.read.all",
            "donors.delete",
            "donations.read.all",
            "settings.read",
            "settings.update",
            "audit.read",
            "forms.create",
            "forms.read",
            "forms.update",
            "forms.delete",
            "forms.manage",
            "locations.create",
            "locations.read",
            "locations.update",
            "locations.delete",
            "dashboard.read.all",
            "dashboard.read.regional",
            "system.debug",
            "system.monitor",
            "documents.create",
            "documents.read.all",
            "documents.read.regional",
            "documents.update",
            "documents.delete",
            "interviews.schedule",
            "interviews.read",
            "interviews.update",
            "interviews.cancel",
        ),
        max_users=10,
        assignable_by=("super_admin",),
    ),
    _system_role(
        "project_coordinator",
        "Project Coordinator",
        "Project-specific coordination and management",
        level=5,
        category=RoleCategory.COORDINATOR,
        permissions=(
            "users.read.regional",
            "beneficiaries.read.regional",
            "applications.read.regional",
            "applications.update.regional",
            "projects.read.assigned",
            "projects.update.assigned",
            "reports.read.regional",
        ),
        max_users=200,
    ),
    _system_role(
        "scheme_coordinator",
        "Scheme Coordinator",
        "Scheme-specific coordination and management",
        level=5,
        category=RoleCategory.COORDINATOR,
        permissions=(
            "users.read.regional",
            "beneficiaries.read.regional",
            "applications.read.regional",
            "applications.update.regional",
            "schemes.read.assigned",
            "schemes.update.assigned",
            "reports.read.regional",
        ),
        max_users=200,
    ),
    _system_role(
        "beneficiary",
        "Beneficiary",
        "End user with basic access to own data and applications",
        level=1,
        category=RoleCategory.STAFF,
        permissions=(
            "users.read.own",
            "users.update.own",
            "beneficiaries.read.own",
            "beneficiaries.update.own",
            "applications.create",
            "applications.read.own",
            "projects.read.assigned",
            "schemes.read.assigned",
        ),
    ),
)

SYSTEM_ROLE_BY_NAME: dict[str, RoleDefinition] = {
    definition.name: definition for definition in SYSTEM_ROLES
}

__all__ = [
    "PERMISSIONS",
    "PERMISSION_REGISTRY",
    "SYSTEM_ROLES",
    "SYSTEM_ROLE_BY_NAME",
]
