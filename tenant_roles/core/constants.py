"""Core constants: cache key prefix, base keys and tenant scope literals.

Single source of truth for cache key structure (DRY).
"""

# Prefix for every cache key and the package-wide cache tag
CACHE_PREFIX = "tenant_roles"

# Delimiter for composite keys
CACHE_KEY_SEP = ":"

# Locale segment used when i18n is disabled
DEFAULT_LOCALE_SEGMENT = "default"

# Base keys (last segment of a contextual key)
MATRIX_CACHE_KEY = "permission_matrix"
GROUPED_MATRIX_CACHE_KEY = "permission_matrix_grouped"
GROUPED_PERMISSIONS_CACHE_KEY = "grouped_permissions"
ROLE_STATS_CACHE_KEY = "role_stats"
PERMISSION_STATS_CACHE_KEY = "permission_stats"


def guard_matrix_key(guard: str) -> str:
    """Base cache key of the matrix for an explicit guard."""
    return f"{MATRIX_CACHE_KEY}{CACHE_KEY_SEP}{guard}"


# Tenant scope keys
SCOPE_GLOBAL = "global"
SCOPE_TEAM_PREFIX = "team_"
SCOPE_TEAM_GLOBAL = "team_global"
SCOPE_DB_PREFIX = "db_"
SCOPE_DB_CENTRAL = "db_central"

# Permission names and patterns
PERMISSION_NAME_PATTERN = r"^[a-z0-9_.-]+$"
WILDCARD_ALL = "*"
WILDCARD_GROUP_SUFFIX = ".*"
UNGROUPED = "ungrouped"

ROLE_NAME_MAX_LENGTH = 255
