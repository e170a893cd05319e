"""RBAC error taxonomy shared by registries, stores and the engine."""

from __future__ import annotations


class RbacError(ValueError):
    """Base class for RBAC failures reported to callers."""


class ValidationError(RbacError):
    """Raised when a permission, role or assignment payload is malformed."""


class NotFoundError(RbacError):
    """Raised when a referenced role, permission or assignment is absent."""


class DuplicateAssignmentError(RbacError):
    """Raised when the user already holds an active assignment for the role."""


class ConflictError(RbacError):
    """Raised when an operation is blocked by live references or role constraints."""


class CycleError(RbacError):
    """Raised when a role parent chain or permission dependency chain loops."""


__all__ = [
    "ConflictError",
    "CycleError",
    "DuplicateAssignmentError",
    "NotFoundError",
    "RbacError",
    "ValidationError",
]
