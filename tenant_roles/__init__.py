"""tenant-roles: tenant- and guard-aware role/permission management core."""

__version__ = "1.0.0"
