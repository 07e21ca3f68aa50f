"""
Redis connection management and cross-process update relay.

With several hub processes behind a load balancer, a publish received by one
process must reach subscribers held by the others. Each process publishes
updates to one Redis Pub/Sub channel and relays everything it hears on that
channel into its own TopicRegistry.
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as redis
from redis import exceptions as redis_exceptions
from pydantic import ValidationError

from live_shared.schemas import Update

from .registry import TopicRegistry

logger = logging.getLogger(__name__)

RELAY_RETRY_SECONDS = 1.0

_redis_pool: redis.Redis | None = None


async def get_redis(url: str) -> redis.Redis:
    """Get or create the Redis connection."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.from_url(url, decode_responses=True)
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.close()
        _redis_pool = None


class RedisRelay:
    """Publishes updates to Redis and feeds received ones to the local registry."""

    def __init__(
        self,
        registry: TopicRegistry,
        redis_url: str,
        channel: str,
        retry_delay: float = RELAY_RETRY_SECONDS,
    ):
        self._registry = registry
        self._redis_url = redis_url
        self._channel = channel
        self._retry_delay = retry_delay
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def publish(self, update: Update) -> None:
        client = await get_redis(self._redis_url)
        await client.publish(self._channel, update.model_dump_json())

    async def _listen(self) -> None:
        while True:
            try:
                await self._listen_once()
            except asyncio.CancelledError:
                logger.info("Redis relay cancelled for %s", self._channel)
                raise
            except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError, OSError) as exc:
                logger.warning(
                    "Redis relay lost %s (%s), resubscribing in %.1fs",
                    self._channel,
                    exc,
                    self._retry_delay,
                )
            else:
                logger.warning("Redis relay stream for %s ended, resubscribing", self._channel)
            await asyncio.sleep(self._retry_delay)

    async def _listen_once(self) -> None:
        client = await get_redis(self._redis_url)
        pubsub = client.pubsub()
        try:
            await pubsub.subscribe(self._channel)
            logger.info("Redis relay listening on %s", self._channel)
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                self.relay(message["data"])
        finally:
            try:
                await pubsub.unsubscribe(self._channel)
                await pubsub.close()
            except (redis_exceptions.ConnectionError, OSError):
                # Connection already gone; nothing left to release
                pass

    def relay(self, raw: str) -> int:
        """Deliver one raw Pub/Sub payload locally. Bad payloads are dropped."""
        try:
            update = Update.model_validate_json(raw)
        except ValidationError:
            logger.warning("Dropping malformed relayed update: %.200s", raw)
            return 0
        return self._registry.publish(update)
