"""
Key/value cache backend.

The onboarding core only relies on the get/set/delete contract; Redis is the
production implementation. A TTL of 0 keeps the value until it is deleted.
"""
from typing import Optional, Protocol

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger(__name__)

CACHE_STORAGE_KEY = "cache:{key}"


class CacheError(Exception):
    """Raised when a cache command fails."""

    def __init__(self, message: str, command: str, key: str):
        super().__init__(message)
        self.command = command
        self.key = key


class CacheBackend(Protocol):
    """Contract every cache backend implements."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class RedisCache:
    """
    Redis implementation of the cache contract.

    Keys are namespaced with the ``cache:`` prefix so the cache can share a
    Redis database with other consumers.
    """

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True))

    @staticmethod
    def storage_key(key: str) -> str:
        return CACHE_STORAGE_KEY.format(key=key)

    async def get(self, key: str) -> Optional[str]:
        """
        Get a raw cached value.

        Returns:
            Optional[str]: Cached value, None when the key is absent

        Raises:
            CacheError: If the Redis command fails
        """
        try:
            return await self.client.get(self.storage_key(key))
        except RedisError as e:
            logger.error("cache_query_failed", command="GET", key=key, error=str(e))
            raise CacheError(f"Cache GET failed: {e}", "GET", key) from e

    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        """
        Store a raw value.

        Args:
            key: Cache key (without storage prefix)
            value: Serialized value
            ttl: Expiration in seconds, 0 keeps the value until deleted
        """
        try:
            await self.client.set(self.storage_key(key), value, ex=ttl if ttl > 0 else None)
        except RedisError as e:
            logger.error("cache_query_failed", command="SET", key=key, error=str(e))
            raise CacheError(f"Cache SET failed: {e}", "SET", key) from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(self.storage_key(key))
        except RedisError as e:
            logger.error("cache_query_failed", command="DEL", key=key, error=str(e))
            raise CacheError(f"Cache DEL failed: {e}", "DEL", key) from e

    async def ping(self) -> bool:
        return await self.client.ping()

    async def close(self) -> None:
        await self.client.aclose()
