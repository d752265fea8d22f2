"""
Typed cache access patterns.

Two patterns are used by the onboarding core and must not be mixed:

- ``ReadThroughCache``: values are loaded from the store on a miss and kept
  for the configured TTL. Writers of the underlying records may only delete
  them (see ``invalidate_keys``), never write them.
- ``InvalidatedCache``: values are written when the backing record changes
  and deleted when it is mutated elsewhere. Every failure is raised.
"""
from typing import Awaitable, Callable, Generic, Optional, Tuple, TypeVar

import structlog
from pydantic import TypeAdapter, ValidationError

from .backend import CacheBackend

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def invalidate_keys(backend: CacheBackend, *keys: str) -> None:
    """
    Delete every given key, stopping at the first failure.

    Raises:
        CacheError: If any delete fails
    """
    for key in keys:
        await backend.delete(key)
        logger.debug("cache_key_invalidated", key=key)


class _TypedCache(Generic[T]):
    def __init__(self, backend: CacheBackend, adapter: TypeAdapter):
        self.backend = backend
        self.adapter = adapter

    async def get(self, key: str) -> Optional[T]:
        """
        Get a decoded value.

        A value that no longer decodes is treated as a miss so the next
        write replaces it.
        """
        raw = await self.backend.get(key)
        if raw is None:
            return None
        try:
            return self.adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning("cache_value_decode_failed", key=key, error=str(e))
            return None

    def _dump(self, value: T) -> str:
        return self.adapter.dump_json(value).decode("utf-8")


class ReadThroughCache(_TypedCache[T]):
    """TTL-based cache populated on read."""

    def __init__(self, backend: CacheBackend, adapter: TypeAdapter, ttl: int = 0):
        super().__init__(backend, adapter)
        self.ttl = ttl

    async def get_or_load(
        self, key: str, loader: Callable[[], Awaitable[T]]
    ) -> Tuple[T, bool]:
        """
        Return the cached value or load and cache it.

        Args:
            key: Cache key
            loader: Coroutine factory reading the value from the store

        Returns:
            Tuple[T, bool]: The value and whether it was served from cache

        Raises:
            CacheError: If reading or populating the cache fails
        """
        cached = await self.get(key)
        if cached is not None:
            return cached, True

        value = await loader()
        await self.backend.set(key, self._dump(value), self.ttl)
        return value, False


class InvalidatedCache(_TypedCache[T]):
    """Write-through cache whose entries live until explicitly deleted."""

    async def put(self, key: str, value: T) -> None:
        await self.backend.set(key, self._dump(value), 0)

    async def invalidate(self, *keys: str) -> None:
        await invalidate_keys(self.backend, *keys)
