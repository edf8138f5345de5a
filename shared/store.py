"""
Key-value store interface shared by the cache and the rate limiter.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """Network-accessible store shared by every service instance.

    Implementations raise :class:`shared.errors.StoreUnavailableError` for
    any failure talking to the backing store. All mutations are atomic
    single-key operations.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or ``None`` when the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Write ``value`` under ``key`` expiring after ``ttl_seconds``."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Atomically increment ``key`` and return the post-increment count."""

    @abstractmethod
    async def ttl(self, key: str) -> Optional[int]:
        """Remaining seconds before expiry; ``None`` if absent or persistent."""

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        """Set an expiry on ``key``; ``False`` when the key does not exist."""

    @abstractmethod
    async def ping(self) -> bool:
        """Health probe."""

    async def close(self) -> None:
        """Release connections."""
