"""Exception handlers for hosts that mount tenant-roles behind FastAPI.

Register with register_exception_handlers(app). Maps domain exceptions to
HTTP responses by error_code.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenant_roles.domain.exceptions import RolesException

logger = logging.getLogger(__name__)

# Map domain error_code to HTTP status
_ERROR_CODE_STATUS: dict[str, int] = {
    "RESOURCE_NOT_FOUND": 404,
    "INVALID_GUARD": 400,
    "VALIDATION_ERROR": 422,
    "TRANSACTION_FAILED": 500,
    "CACHE_UNAVAILABLE": 500,
    "DATABASE_NOT_CONFIGURED": 500,
}


def status_for(exc: RolesException) -> int:
    return _ERROR_CODE_STATUS.get(exc.error_code, 400)


def _roles_exception_handler(request: Request, exc: RolesException) -> JSONResponse:
    """Return JSON from RolesException.to_dict() with the mapped status code."""
    status = status_for(exc)
    if status >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.details)
    return JSONResponse(status_code=status, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Register the RolesException handler (covers every subclass)."""
    app.add_exception_handler(RolesException, _roles_exception_handler)
