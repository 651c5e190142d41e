"""Response cache and storage adapters."""

from courier.cache.cache import ResponseCache, cache_key, parse_cache_control
from courier.cache.models import CachedResponse
from courier.cache.storage import CacheStorage, MemoryCacheStorage


__all__ = [
    "CacheStorage",
    "CachedResponse",
    "MemoryCacheStorage",
    "ResponseCache",
    "cache_key",
    "parse_cache_control",
]
