"""Roles context middleware.

Binds the request's team (team_scoped) or tenant (multi_database) from the
tenant header or the authenticated user's team foreign key, and the request
locale from Accept-Language when it is a configured locale. Both bindings
are reset after the response.
"""

from __future__ import annotations

from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tenant_roles.core.config import Settings, get_settings
from tenant_roles.core.tenant_context import (
    TeamScopedTenantContext,
    current_team_id,
    current_tenant_id,
)
from tenant_roles.shared.context import get_current_locale, set_current_locale


def locale_from_header(accept_language: str | None, settings: Settings) -> str | None:
    """First configured locale in Accept-Language, highest quality first.

    "ar-EG" matches a configured "ar". Returns None when i18n is off or nothing matches.
    """
    if not settings.i18n_enabled or not accept_language:
        return None
    candidates: list[tuple[float, int, str]] = []
    for index, part in enumerate(accept_language.split(",")):
        tag, _, params = part.strip().partition(";")
        quality = 1.0
        if params.strip().startswith("q="):
            try:
                quality = float(params.strip()[2:])
            except ValueError:
                quality = 0.0
        if tag:
            candidates.append((-quality, index, tag.strip()))
    for _, _, tag in sorted(candidates):
        for locale in (tag, tag.split("-")[0]):
            if locale in settings.i18n_locales:
                return locale
    return None


def _user_from_request(request: Request) -> Any:
    """Authenticated user set by AuthenticationMiddleware or a host on request.state."""
    if "user" in request.scope:
        return request.scope["user"]
    return getattr(request.state, "user", None)


def tenant_from_request(request: Request, settings: Settings) -> str | None:
    """Tenant id from the tenant header, else the user's team foreign key."""
    value = request.headers.get(settings.tenant_header_name)
    if value:
        return value
    if settings.tenancy_mode != "team_scoped":
        return None
    team_id = TeamScopedTenantContext(settings).team_id_from_user(_user_from_request(request))
    return str(team_id) if team_id is not None else None


def RolesContextMiddleware(app: Callable) -> Callable:
    """Set team/tenant and locale bindings before the route runs."""

    class _Middleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next: Callable) -> Response:
            settings = get_settings()
            tenant_id = tenant_from_request(request, settings)
            binding = current_tenant_id if settings.tenancy_mode == "multi_database" else current_team_id
            tenant_token = binding.set(tenant_id if settings.tenancy_mode != "single" else None)
            previous_locale = get_current_locale()
            set_current_locale(locale_from_header(request.headers.get("Accept-Language"), settings))
            try:
                return await call_next(request)
            finally:
                binding.reset(tenant_token)
                set_current_locale(previous_locale)

    return _Middleware(app)
