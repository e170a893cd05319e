"""RBAC store implementations."""

from .base import RbacStore
from .memory import InMemoryRbacStore

__all__ = ["InMemoryRbacStore", "RbacStore"]
