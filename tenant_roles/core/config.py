"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. The Settings instance is immutable (frozen) and is
injected into every component constructor; nothing reads configuration
lazily at call time.
"""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TenancyModeName = Literal["single", "team_scoped", "multi_database"]

DEFAULT_SEED_ROLES: tuple[str, ...] = ("super-admin", "admin", "user")


class Settings(BaseSettings):
    """Settings loaded from environment and .env.

    Complex values (lists, dicts) are read from the environment as JSON,
    e.g. AUTH_GUARDS='["web","api"]' or SEED_MAP='{"admin":["users.*"]}'.
    """

    # App
    app_name: str = "tenant-roles"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database (postgresql+asyncpg in production; sqlite+aiosqlite accepted)
    database_url: str = ""
    database_echo: bool = False
    db_pool_size: int | None = None
    db_max_overflow: int | None = None

    # Tenancy
    tenancy_mode: TenancyModeName = "single"
    team_foreign_key: str = "team_id"
    tenancy_provider: str | None = None
    tenant_header_name: str = "X-Team-ID"

    # Guards: package default, framework default, and the configured set
    guard: str | None = "web"
    auth_default_guard: str = "web"
    auth_guards: list[str] = ["web", "api"]

    # i18n
    i18n_enabled: bool = False
    i18n_locales: list[str] = ["en"]
    i18n_default: str = "en"
    i18n_fallback: str = "en"

    # Cache
    cache_enabled: bool = True
    cache_ttl: int = 300
    cache_backend: Literal["memory", "redis"] = "memory"
    cache_tagging: bool = True
    cache_keys: list[str] = [
        "permission_matrix",
        "permission_matrix_grouped",
        "grouped_permissions",
        "role_stats",
        "permission_stats",
    ]

    # Redis (cache_backend == "redis")
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None

    # Seed catalogue
    seed_roles: list[str] = ["manager"]
    seed_permission_groups: dict[str, list[str]] = {
        "roles": ["list", "create", "show", "update", "delete", "restore", "force-delete"],
        "users": ["list", "create", "show", "update", "delete", "restore", "force-delete"],
        "permissions": ["list", "show"],
    }
    seed_map: dict[str, list[str]] = {
        "super-admin": ["*"],
        "admin": ["users.*"],
    }
    seed_role_descriptions: dict[str, str | dict[str, str]] = {
        "super-admin": "Full system access",
        "admin": "Manage users and content",
        "user": "Standard account",
        "manager": "Operations management",
    }
    seed_permission_descriptions: dict[str, str | dict[str, str]] = {}
    seed_permission_labels: dict[str, str | dict[str, str]] = {}
    seed_permission_group_labels: dict[str, str | dict[str, str]] = {}

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @model_validator(mode="after")
    def validate_guards_and_locales(self) -> "Settings":
        """Validate guard and locale configuration.

        - auth_guards must not be empty.
        - guard (when set) and auth_default_guard must be in auth_guards.
        - i18n_default and i18n_fallback must be in i18n_locales when i18n is enabled.
        """
        if not self.auth_guards:
            raise ValueError("AUTH_GUARDS must list at least one guard.")
        if self.guard and self.guard not in self.auth_guards:
            raise ValueError(
                f"Package guard {self.guard!r} is not one of AUTH_GUARDS {self.auth_guards!r}."
            )
        if self.auth_default_guard not in self.auth_guards:
            raise ValueError(
                f"AUTH_DEFAULT_GUARD {self.auth_default_guard!r} is not one of "
                f"AUTH_GUARDS {self.auth_guards!r}."
            )
        if self.i18n_enabled:
            for name in ("i18n_default", "i18n_fallback"):
                if getattr(self, name) not in self.i18n_locales:
                    raise ValueError(
                        f"{name.upper()} must be one of I18N_LOCALES {self.i18n_locales!r}."
                    )
        if self.cache_ttl <= 0:
            raise ValueError("CACHE_TTL must be a positive number of seconds.")
        return self

    def all_seed_roles(self) -> list[str]:
        """Default roles plus seed_roles, de-duplicated, order preserved."""
        return list(dict.fromkeys([*DEFAULT_SEED_ROLES, *self.seed_roles]))

    def configured_permission_names(self) -> list[str]:
        """Permission names produced by seed_permission_groups ("group.action")."""
        names = [
            f"{group}.{action}"
            for group, actions in self.seed_permission_groups.items()
            for action in actions
        ]
        return list(dict.fromkeys(names))


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars, or build
    Settings(...) directly and inject it.
    """
    return Settings()
