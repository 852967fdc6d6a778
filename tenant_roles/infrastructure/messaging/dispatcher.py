"""Event dispatchers: in-process listeners and a Redis channel publisher.

Listener and publish failures are logged, never raised: events are
notifications, the mutation that produced them has already committed.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import redis.asyncio as redis

from tenant_roles.core.config import Settings
from tenant_roles.core.constants import CACHE_KEY_SEP, CACHE_PREFIX
from tenant_roles.domain.events import PERMISSION_CHANGING_EVENTS, DomainEvent
from tenant_roles.infrastructure.cache.keys import CacheKeyBuilder

logger = logging.getLogger(__name__)

Listener = Callable[[DomainEvent], Awaitable[None]]

EVENTS_CHANNEL = CACHE_KEY_SEP.join((CACHE_PREFIX, "events"))


class InProcessEventDispatcher:
    """Calls async listeners subscribed by event type (subclasses included)."""

    def __init__(self) -> None:
        self._listeners: dict[type[DomainEvent], list[Listener]] = defaultdict(list)

    def subscribe(
        self, event_types: type[DomainEvent] | Iterable[type[DomainEvent]], listener: Listener
    ) -> None:
        if isinstance(event_types, type):
            event_types = (event_types,)
        for event_type in event_types:
            self._listeners[event_type].append(listener)

    def listeners_for(self, event: DomainEvent) -> list[Listener]:
        found: list[Listener] = []
        for event_type, listeners in self._listeners.items():
            if isinstance(event, event_type):
                found.extend(listener for listener in listeners if listener not in found)
        return found

    async def dispatch(self, event: DomainEvent) -> None:
        for listener in self.listeners_for(event):
            try:
                await listener(event)
            except Exception:
                logger.exception(
                    "Event listener %r failed for %s", listener, event.event_name
                )


class RedisEventPublisher:
    """Publishes events as JSON on a Redis channel (for other processes)."""

    def __init__(
        self,
        settings: Settings,
        redis_client: redis.Redis | None = None,
        channel: str = EVENTS_CHANNEL,
    ) -> None:
        """Initialize. Pass redis_client for DI/testing."""
        self.settings = settings
        self.redis = redis_client
        self.channel = channel
        self._connected = redis_client is not None

    async def connect(self) -> None:
        """Establish Redis connection. Call on app startup."""
        if self._connected:
            return
        try:
            self.redis = redis.Redis(
                host=self.settings.redis_host,
                port=self.settings.redis_port,
                db=self.settings.redis_db,
                password=self.settings.redis_password.get_secret_value()
                if self.settings.redis_password
                else None,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            await self.redis.ping()
            self._connected = True
            logger.info("Redis event publisher connected")
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("Redis event publisher connection failed: %s", e)
            self._connected = False
            self.redis = None

    async def disconnect(self) -> None:
        """Close Redis connection. Call on app shutdown."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self._connected = False
            logger.info("Redis event publisher disconnected")

    def is_available(self) -> bool:
        return self._connected and self.redis is not None

    async def dispatch(self, event: DomainEvent) -> None:
        if not self.is_available() or self.redis is None:
            logger.debug("Redis not available, skipping publish of %s", event.event_name)
            return
        try:
            await self.redis.publish(self.channel, json.dumps(event.to_dict()))
            logger.debug("Published %s to %s", event.event_name, self.channel)
        except redis.RedisError:
            logger.exception("Failed to publish %s", event.event_name)


class CompositeEventDispatcher:
    """Fans one event out to several dispatchers in order."""

    def __init__(self, *dispatchers: Any) -> None:
        self.dispatchers = list(dispatchers)

    async def dispatch(self, event: DomainEvent) -> None:
        for dispatcher in self.dispatchers:
            await dispatcher.dispatch(event)


class ClearPermissionCacheListener:
    """Flushes role/permission caches whenever a permission-changing event fires."""

    def __init__(self, cache_keys: CacheKeyBuilder) -> None:
        self.cache_keys = cache_keys

    async def __call__(self, event: DomainEvent) -> None:
        logger.debug("Flushing permission caches after %s", event.event_name)
        await self.cache_keys.flush()

    def register(self, dispatcher: InProcessEventDispatcher) -> None:
        dispatcher.subscribe(PERMISSION_CHANGING_EVENTS, self)
