"""
Redis access: shared async client and the processed-webhook-event store.
"""

from typing import Optional
import logging

from redis import asyncio as aioredis
from redis.asyncio.client import Redis
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Process-wide async Redis client."""

    _client: Optional[Redis] = None

    @classmethod
    def get_client(cls) -> Redis:
        if cls._client is None:
            cls._client = aioredis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=2.0,
                socket_connect_timeout=2.0,
            )
            logger.info("Redis client initialized")
        return cls._client

    @classmethod
    async def close(cls):
        if cls._client:
            await cls._client.aclose()
            cls._client = None
            logger.info("Redis client closed")


async def get_redis() -> Redis:
    return RedisClient.get_client()


class ProcessedEventStore:
    """
    Remembers gateway webhook event ids for a TTL window.

    Only an optimization: capture is idempotent in the database, so when
    Redis is down every event is treated as new.
    """

    def __init__(self, namespace: str, ttl_seconds: Optional[int] = None):
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds or settings.webhook_event_ttl_seconds

    def _key(self, event_id: str) -> str:
        return f"{self.namespace}:event:{event_id}"

    async def seen(self, event_id: Optional[str]) -> bool:
        if not event_id:
            return False
        try:
            redis = await get_redis()
            return bool(await redis.exists(self._key(event_id)))
        except RedisError as e:
            logger.warning(f"Redis unavailable for event dedupe ({event_id}): {e}")
            return False

    async def remember(self, event_id: Optional[str]) -> None:
        if not event_id:
            return
        try:
            redis = await get_redis()
            await redis.setex(self._key(event_id), self.ttl_seconds, "1")
        except RedisError as e:
            logger.warning(f"Failed to remember event {event_id}: {e}")
