"""Redis-backed taggable cache.

Values are JSON-serialised under their key with SETEX. Each tag is a Redis
set of the keys stored under it ("<prefix>:tag:<tag>"); flushing a tag
UNLINKs its members and the set itself. Call connect() at startup and
disconnect() at shutdown.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import redis.asyncio as redis

from tenant_roles.core.config import Settings
from tenant_roles.core.constants import CACHE_KEY_SEP, CACHE_PREFIX
from tenant_roles.domain.exceptions import CacheUnavailableException
from tenant_roles.infrastructure.cache.cache_protocol import TaggableCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


def tag_set_key(tag: str) -> str:
    """Redis key of the set holding the members of tag."""
    return CACHE_KEY_SEP.join((CACHE_PREFIX, "tag", tag))


class RedisCache(TaggableCache):
    """Async Redis cache with TTL and tag sets."""

    def __init__(self, settings: Settings, redis_client: redis.Redis | None = None) -> None:
        """Initialize cache.

        Args:
            settings: Application settings (connection parameters).
            redis_client: Optional Redis client for testing or DI.
        """
        self.settings = settings
        self.redis = redis_client
        self._connected = redis_client is not None

    async def connect(self) -> None:
        """Establish Redis connection. Call on app startup."""
        if self.redis is not None:
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
                socket_keepalive=True,
            )
            await self.redis.ping()
            self._connected = True
            logger.info(
                "Redis cache connected: %s:%s",
                self.settings.redis_host,
                self.settings.redis_port,
            )
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("Redis connection failed: %s. Cache degraded.", e)
            self._connected = False
            self.redis = None

    async def disconnect(self) -> None:
        """Close Redis connection. Call on app shutdown."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self._connected = False
            logger.info("Redis cache disconnected")

    def is_available(self) -> bool:
        return self._connected and self.redis is not None

    async def _reconnect(self) -> bool:
        """Attempt to reconnect after a connection error. Returns True if reconnected."""
        if self.redis is not None:
            try:
                await self.redis.aclose()
            except redis.RedisError:
                logger.debug("Ignoring error while closing broken Redis client")
        self.redis = None
        self._connected = False
        await self.connect()
        return self._connected

    async def _run(
        self,
        operation: str,
        key: str | None,
        command: Callable[[redis.Redis], Awaitable[T]],
    ) -> T:
        """Run command, reconnecting once on connection errors.

        Raises:
            CacheUnavailableException: If Redis is unavailable or the command fails.
        """
        if not self.is_available() or self.redis is None:
            raise CacheUnavailableException(operation, key)
        try:
            return await command(self.redis)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            if await self._reconnect() and self.redis is not None:
                try:
                    return await command(self.redis)
                except redis.RedisError as retry_error:
                    raise CacheUnavailableException(operation, key) from retry_error
            raise CacheUnavailableException(operation, key) from e
        except redis.RedisError as e:
            raise CacheUnavailableException(operation, key) from e

    async def get(self, key: str) -> Any | None:
        value = await self._run("get", key, lambda client: client.get(key))
        if value is None:
            return None
        return json.loads(value)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        serialized = json.dumps(value)
        await self._run("set", key, lambda client: client.setex(key, ttl, serialized))

    async def delete(self, key: str) -> None:
        await self._run("delete", key, lambda client: client.delete(key))

    async def has(self, key: str) -> bool:
        return bool(await self._run("has", key, lambda client: client.exists(key)))

    async def set_tagged(
        self, key: str, value: Any, ttl: int, tags: Iterable[str]
    ) -> None:
        serialized = json.dumps(value)
        tag_list = list(tags)

        async def command(client: redis.Redis) -> list[Any]:
            async with client.pipeline(transaction=True) as pipe:
                pipe.setex(key, ttl, serialized)
                for tag in tag_list:
                    tag_key = tag_set_key(tag)
                    pipe.sadd(tag_key, key)
                    # Tag sets live as long as their longest-lived member.
                    pipe.expire(tag_key, ttl, nx=True)
                    pipe.expire(tag_key, ttl, gt=True)
                return await pipe.execute()

        await self._run("set_tagged", key, command)

    async def flush_tags(self, tags: Iterable[str]) -> int:
        tag_keys = [tag_set_key(tag) for tag in tags]

        async def command(client: redis.Redis) -> int:
            members: set[str] = set()
            for tag_key in tag_keys:
                members.update(await client.smembers(tag_key))
            if not members and not tag_keys:
                return 0
            async with client.pipeline(transaction=False) as pipe:
                if members:
                    pipe.unlink(*members)
                pipe.unlink(*tag_keys)
                results = await pipe.execute()
            return int(results[0] or 0) if members else 0

        removed = await self._run("flush_tags", None, command)
        if removed:
            logger.info("Cache INVALIDATE tags %s (%s keys)", tag_keys, removed)
        return removed
