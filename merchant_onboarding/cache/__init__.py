"""Cache contract, Redis backend and typed access patterns."""
from .access import InvalidatedCache, ReadThroughCache, invalidate_keys
from .backend import CacheBackend, CacheError, RedisCache

__all__ = [
    "CacheBackend",
    "CacheError",
    "InvalidatedCache",
    "ReadThroughCache",
    "RedisCache",
    "invalidate_keys",
]
