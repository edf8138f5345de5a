"""Shared key-value store used by the cache and the rate limiter."""

from shared.store import KeyValueStore
from .redis_store import RedisStore

__all__ = ["KeyValueStore", "RedisStore"]
