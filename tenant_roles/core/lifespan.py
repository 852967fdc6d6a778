"""Application lifespan for hosts embedding tenant-roles.

Startup: logging, cache backend (connected), event dispatcher with the
cache-clearing listener. Shutdown: disconnect cache and publisher,
dispose the SQL engine. Everything is stored on app.state.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tenant_roles.core.config import get_settings
from tenant_roles.infrastructure.cache import build_cache_backend
from tenant_roles.infrastructure.messaging import (
    CompositeEventDispatcher,
    InProcessEventDispatcher,
    RedisEventPublisher,
)
from tenant_roles.infrastructure.persistence.database import dispose_engine
from tenant_roles.shared.telemetry import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def roles_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown."""
    settings = get_settings()
    setup_logging(settings)

    # ---- Startup ----
    cache = build_cache_backend(settings)
    await cache.connect()
    app.state.roles_cache = cache

    in_process = InProcessEventDispatcher()
    app.state.roles_in_process_events = in_process
    publisher: RedisEventPublisher | None = None
    if settings.cache_backend == "redis":
        publisher = RedisEventPublisher(settings)
        await publisher.connect()
        app.state.roles_events = CompositeEventDispatcher(in_process, publisher)
    else:
        app.state.roles_events = in_process
    logger.info(
        "tenant-roles started (tenancy=%s, cache=%s)", settings.tenancy_mode, type(cache).__name__
    )

    yield

    # ---- Shutdown ----
    if publisher is not None:
        await publisher.disconnect()
    await cache.disconnect()
    app.state.roles_cache = None
    await dispose_engine()
    logger.info("tenant-roles stopped")
