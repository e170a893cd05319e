"""Role-based access control for the beneficiary-management ERP."""

__version__ = "0.1.0"
