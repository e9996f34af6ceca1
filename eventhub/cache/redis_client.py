"""
Redis cache client with connection pooling and JSON serialization.

Every failure is logged and reported as a miss; callers never depend on the
cache being reachable.
"""
import json
from typing import Optional, Any
from redis import asyncio as aioredis
from eventhub.core.config import settings
from eventhub.core.logging import logger


class RedisCache:
    """Redis cache client with connection pooling."""

    def __init__(self, url: Optional[str] = None, enabled: Optional[bool] = None):
        self._url = url or settings.REDIS_URL
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled
        self._client: Optional[aioredis.Redis] = None

    def _get_client(self) -> aioredis.Redis:
        """Get or create Redis client with connection pooling."""
        if self._client is None:
            pool = aioredis.ConnectionPool.from_url(
                self._url,
                decode_responses=True,
                max_connections=20,
            )
            self._client = aioredis.Redis(connection_pool=pool)
            logger.info("Redis connection pool created")
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache by key.

        Returns:
            Cached value or None if not found
        """
        if not self.enabled:
            return None
        try:
            value = await self._get_client().get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, expire: int = 300) -> bool:
        """
        Set value in cache with expiration.

        Args:
            key: Cache key
            value: Value to cache (will be JSON serialized)
            expire: Expiration time in seconds (default: 300)
        """
        if not self.enabled:
            return False
        try:
            serialized = json.dumps(value, default=str)
            await self._get_client().setex(key, expire, serialized)
            return True
        except Exception as e:
            logger.error(f"Redis SET error for key {key}: {e}")
            return False

    async def incr(self, key: str) -> Optional[int]:
        """
        Atomically increment an integer counter, creating it at 1.

        Returns:
            The new value, or None if the cache is disabled or unreachable
        """
        if not self.enabled:
            return None
        try:
            return await self._get_client().incr(key)
        except Exception as e:
            logger.error(f"Redis INCR error for key {key}: {e}")
            return None

    async def close(self):
        """Close Redis connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection pool closed")


# Create a single instance to be imported throughout the app
cache = RedisCache()
