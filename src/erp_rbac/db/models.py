"""RBAC tables."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    false,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from erp_rbac.common.time import utc_now
from erp_rbac.core.rbac.types import PermissionScope, RoleCategory

from .base import Base, TimestampMixin
from .enums import string_enum
from .types import UTCDateTime


class PermissionRow(TimestampMixin, Base):
    """Permission catalog entry."""

    __tablename__ = "rbac_permissions"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    module: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    resource: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    scope: Mapped[PermissionScope] = mapped_column(
        string_enum(PermissionScope, name="rbac_permission_scope"), nullable=False
    )
    conditions: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    dependencies: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )


class RoleRow(TimestampMixin, Base):
    """Role definition; ``parent_name`` links to the role it inherits from."""

    __tablename__ = "rbac_roles"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[RoleCategory] = mapped_column(
        string_enum(RoleCategory, name="rbac_role_category"), nullable=False
    )
    parent_name: Mapped[str | None] = mapped_column(
        String(50), ForeignKey("rbac_roles.name", ondelete="RESTRICT"), nullable=True
    )
    is_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_deletable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    is_modifiable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assignable_by: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)


class RolePermissionRow(Base):
    """Bridge table linking roles and permissions in declaration order."""

    __tablename__ = "rbac_role_permissions"

    role_name: Mapped[str] = mapped_column(
        String(50), ForeignKey("rbac_roles.name", ondelete="CASCADE"), primary_key=True
    )
    permission_name: Mapped[str] = mapped_column(
        String(100), ForeignKey("rbac_permissions.name", ondelete="RESTRICT"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class RoleAssignmentRow(Base):
    """User-role assignment. Rows are deactivated, never deleted.

    ``role_name`` carries no foreign key so assignment history survives role
    deletion.
    """

    __tablename__ = "rbac_user_role_assignments"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    role_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    assigned_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_primary: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    removed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    removed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    removal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


# At most one active assignment per (user, role).
Index(
    "rbac_user_role_assignments_active_key",
    RoleAssignmentRow.user_id,
    RoleAssignmentRow.role_name,
    unique=True,
    sqlite_where=RoleAssignmentRow.is_active == true(),
    postgresql_where=RoleAssignmentRow.is_active == true(),
)


__all__ = [
    "PermissionRow",
    "RoleAssignmentRow",
    "RolePermissionRow",
    "RoleRow",
]
