"""Core RBAC types, catalog and external collaborator contracts."""
