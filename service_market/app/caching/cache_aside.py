"""
Cache-aside fetch layer in front of the upstream market data provider.

Values live only in the shared store, which owns expiry. On a miss the
caller's ``compute`` runs and its result is written back; store faults
degrade to uncached behaviour and are reported through explicit outcomes
instead of being raised.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, TYPE_CHECKING

from shared.errors import StoreUnavailableError
from shared.logging import get_logger
from shared.store import KeyValueStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

T = TypeVar("T")


@dataclass(frozen=True)
class CacheDuration:
    """Cache duration tiers (seconds)."""

    short: int = 60
    medium: int = 300
    long: int = 1800
    very_long: int = 3600 * 6

    @classmethod
    def from_config(cls, config: Any) -> "CacheDuration":
        return cls(
            short=config.cache_ttl_short,
            medium=config.cache_ttl_medium,
            long=config.cache_ttl_long,
            very_long=config.cache_ttl_very_long,
        )


class CacheStatus(str, Enum):
    """Outcome of a cache-aside read."""

    HIT = "hit"
    MISS = "miss"
    STORE_ERROR = "store_error"
    BYPASS = "bypass"


@dataclass(frozen=True)
class CacheLookup:
    """Tagged result of reading a key from the store."""

    status: CacheStatus
    value: Any = None
    error: Optional[Exception] = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    """Value returned by :meth:`CacheAside.fetch` with how it was obtained."""

    value: T
    status: CacheStatus
    stored: bool = False


def make_cache_key(*segments: Any) -> str:
    """Build a colon-delimited cache key such as ``coin:bitcoin:details``."""
    parts = [str(segment) for segment in segments if segment is not None and str(segment) != ""]
    if not parts:
        raise ValueError("Cache key requires at least one segment")
    return ":".join(parts)


def _cache_type(key: str) -> str:
    return key.split(":", 1)[0]


class CacheAside:
    """Read-through cache over a shared :class:`KeyValueStore`.

    Concurrent misses on the same key each run ``compute``; there is no
    single-flight coordination.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        metrics: Optional["MetricsCollector"] = None,
        logger: Any = None,
    ):
        self.store = store
        self.metrics = metrics
        self.logger = logger or get_logger("market.cache")

    async def lookup(self, key: str) -> CacheLookup:
        """Read ``key`` and classify the outcome."""
        cache_type = _cache_type(key)
        try:
            raw = await self.store.get(key)
        except StoreUnavailableError as exc:
            self.logger.warning("Cache read failed, bypassing cache", key=key, error=str(exc))
            if self.metrics:
                self.metrics.record_cache_store_error(cache_type, "read")
            return CacheLookup(CacheStatus.STORE_ERROR, error=exc)

        if raw is None:
            self.logger.debug("Cache miss", key=key)
            if self.metrics:
                self.metrics.record_cache_miss(cache_type)
            return CacheLookup(CacheStatus.MISS)

        try:
            value = json.loads(raw)
        except ValueError as exc:
            self.logger.warning("Discarding undecodable cache entry", key=key, error=str(exc))
            if self.metrics:
                self.metrics.record_cache_miss(cache_type)
            return CacheLookup(CacheStatus.MISS)

        self.logger.debug("Cache hit", key=key)
        if self.metrics:
            self.metrics.record_cache_hit(cache_type)
        return CacheLookup(CacheStatus.HIT, value=value)

    async def store_value(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Best-effort write; failures are logged and reported as ``False``."""
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            self.logger.warning("Cache write skipped, value is not serializable", key=key, error=str(exc))
            return False

        try:
            await self.store.set(key, payload, ttl_seconds)
        except StoreUnavailableError as exc:
            self.logger.warning("Cache write failed", key=key, ttl=ttl_seconds, error=str(exc))
            if self.metrics:
                self.metrics.record_cache_store_error(_cache_type(key), "write")
            return False

        self.logger.debug("Cache set", key=key, ttl=f"{ttl_seconds}s")
        return True

    async def fetch(
        self,
        key: str,
        ttl_seconds: int,
        compute: Callable[[], Awaitable[T]],
    ) -> CacheResult[T]:
        """Return the cached value for ``key`` or compute, store and return it.

        Failures raised by ``compute`` propagate unchanged and nothing is
        written.
        """
        if not key:
            raise ValueError("Cache key must be a non-empty string")

        if ttl_seconds <= 0:
            return CacheResult(await compute(), CacheStatus.BYPASS)

        cached = await self.lookup(key)
        if cached.hit:
            return CacheResult(cached.value, CacheStatus.HIT)

        value = await compute()

        # Store known to be down: skip the write-back.
        if cached.status is CacheStatus.STORE_ERROR:
            return CacheResult(value, CacheStatus.STORE_ERROR)

        stored = await self.store_value(key, value, ttl_seconds)
        return CacheResult(value, CacheStatus.MISS, stored=stored)

    async def get_or_compute(
        self,
        key: str,
        ttl_seconds: int,
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        """Cache-aside read of ``key``; see :meth:`fetch`."""
        result = await self.fetch(key, ttl_seconds, compute)
        return result.value
