"""Messaging: event dispatchers and the cache-clearing listener."""

from tenant_roles.infrastructure.messaging.dispatcher import (
    ClearPermissionCacheListener,
    CompositeEventDispatcher,
    InProcessEventDispatcher,
    RedisEventPublisher,
)

__all__ = [
    "ClearPermissionCacheListener",
    "CompositeEventDispatcher",
    "InProcessEventDispatcher",
    "RedisEventPublisher",
]
