"""Cache-aside fetch layer."""

from .cache_aside import (
    CacheAside,
    CacheDuration,
    CacheLookup,
    CacheResult,
    CacheStatus,
    make_cache_key,
)

__all__ = [
    "CacheAside",
    "CacheDuration",
    "CacheLookup",
    "CacheResult",
    "CacheStatus",
    "make_cache_key",
]
