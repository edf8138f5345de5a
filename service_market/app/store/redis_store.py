"""
Redis implementation of the shared key-value store.
"""

import asyncio
from typing import Any, Awaitable, Optional, TypeVar

import redis.asyncio as redis

from shared.errors import StoreUnavailableError
from shared.logging import get_logger
from shared.store import KeyValueStore

T = TypeVar("T")

_STORE_ERRORS = (redis.RedisError, OSError, asyncio.TimeoutError)


class RedisStore(KeyValueStore):
    """Key-value store backed by a shared Redis instance."""

    def __init__(
        self,
        redis_url: str,
        *,
        socket_timeout: float = 2.0,
        socket_connect_timeout: float = 2.0,
        client: Optional[redis.Redis] = None,
        logger: Any = None,
    ):
        self.redis_url = redis_url
        self.logger = logger or get_logger("market.store.redis")
        self._redis = client if client is not None else redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
        )

    async def _call(self, operation: str, key: Optional[str], awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except _STORE_ERRORS as exc:
            self.logger.warning("Redis operation failed", operation=operation, key=key, error=str(exc))
            raise StoreUnavailableError(operation, str(exc), {"key": key}) from exc

    async def get(self, key: str) -> Optional[str]:
        value = await self._call("get", key, self._redis.get(key))
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._call("set", key, self._redis.set(key, value, ex=ttl_seconds))

    async def incr(self, key: str) -> int:
        return int(await self._call("incr", key, self._redis.incr(key)))

    async def ttl(self, key: str) -> Optional[int]:
        remaining = await self._call("ttl", key, self._redis.ttl(key))
        # -2: key missing, -1: key has no expiry
        if remaining is None or remaining < 0:
            return None
        return int(remaining)

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._call("expire", key, self._redis.expire(key, seconds)))

    async def ping(self) -> bool:
        return bool(await self._call("ping", None, self._redis.ping()))

    async def close(self) -> None:
        """Close Redis connections."""
        try:
            await self._redis.aclose()
        except _STORE_ERRORS as exc:  # pragma: no cover - close is best effort
            self.logger.warning("Redis close failed", error=str(exc))
