"""Common utilities shared across the RBAC service."""

__all__ = ["logging", "schema", "time"]
