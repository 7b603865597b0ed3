"""In-memory response cache."""

from .ttl_cache import CacheEntry, ReadWriteLock, TTLCache

__all__ = [
    "CacheEntry",
    "ReadWriteLock",
    "TTLCache",
]
