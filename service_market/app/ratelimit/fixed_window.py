"""
Fixed-window rate limiter for the market data service.

One counter per client address lives in the shared store. The counter's
expiry is set when the first request creates it and is never extended, so a
window starts at a client's first request and ends when the key expires.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from fastapi import Request

from shared.errors import StoreUnavailableError
from shared.logging import get_logger
from shared.store import KeyValueStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

DEFAULT_MESSAGE = "Too many requests, please try again later."


@dataclass(frozen=True)
class RateLimitConfig:
    """Immutable limit applied to a class of endpoints."""

    max_requests: int
    window_ms: int
    message: str = DEFAULT_MESSAGE
    name: str = "default"

    def __post_init__(self):
        if self.max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")

    @property
    def window_seconds(self) -> int:
        return max(1, self.window_ms // 1000)


class RateLimitOutcome(str, Enum):
    """Decision taken for a single request."""

    ALLOWED = "allowed"
    DENIED = "denied"
    BYPASSED = "bypassed"


def _isoformat(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of :meth:`FixedWindowRateLimiter.check_and_count`."""

    outcome: RateLimitOutcome
    limit: int
    message: str = DEFAULT_MESSAGE
    count: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None
    retry_after: Optional[int] = None
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is not RateLimitOutcome.DENIED

    def headers(self) -> Dict[str, str]:
        """Rate limit response headers; empty when the limiter was bypassed."""
        if self.outcome is RateLimitOutcome.BYPASSED:
            return {}
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining if self.remaining is not None else 0),
        }
        if self.reset_at is not None:
            headers["X-RateLimit-Reset"] = _isoformat(self.reset_at)
        return headers


class FixedWindowRateLimiter:
    """Distributed fixed-window rate limiter using the shared store."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key_prefix: str = "rate-limit",
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None,
        logger: Any = None,
    ):
        self.store = store
        self.key_prefix = key_prefix
        self.clock = clock
        self.metrics = metrics
        self.logger = logger or get_logger("market.rate_limiter")

    def make_key(self, client_key: str) -> str:
        """Generate rate limit key."""
        return f"{self.key_prefix}:{client_key}"

    async def check_and_count(self, client_key: Optional[str], config: RateLimitConfig) -> RateLimitDecision:
        """Count a request from ``client_key`` and decide whether it may proceed.

        The counter is incremented whether or not the request is allowed.
        Store faults and unknown clients fail open.
        """
        if not client_key:
            self.logger.warning("Rate limiting skipped: unable to determine client address", profile=config.name)
            return self._record(config, RateLimitDecision(
                RateLimitOutcome.BYPASSED, config.max_requests, config.message, reason="client_unknown"
            ))

        key = self.make_key(client_key)
        window_seconds = config.window_seconds

        try:
            count = await self.store.incr(key)
            if count == 1:
                await self.store.expire(key, window_seconds)
        except StoreUnavailableError as exc:
            self.logger.error("Rate limit check error, failing open", key=key, error=str(exc))
            return self._record(config, RateLimitDecision(
                RateLimitOutcome.BYPASSED, config.max_requests, config.message, reason="store_unavailable"
            ))

        ttl = await self._remaining_ttl(key, window_seconds)
        reset_at = datetime.fromtimestamp(self.clock() + ttl, tz=timezone.utc)
        remaining = max(0, config.max_requests - count)

        if count > config.max_requests:
            retry_after = max(1, ttl)
            self.logger.warning(
                "Rate limit exceeded",
                client_key=client_key,
                profile=config.name,
                count=count,
                limit=config.max_requests,
                retry_after=retry_after
            )
            return self._record(config, RateLimitDecision(
                RateLimitOutcome.DENIED,
                config.max_requests,
                config.message,
                count=count,
                remaining=remaining,
                reset_at=reset_at,
                retry_after=retry_after,
            ))

        return self._record(config, RateLimitDecision(
            RateLimitOutcome.ALLOWED,
            config.max_requests,
            config.message,
            count=count,
            remaining=remaining,
            reset_at=reset_at,
        ))

    async def _remaining_ttl(self, key: str, window_seconds: int) -> int:
        """Best-effort TTL read, repairing a counter that lost its expiry."""
        try:
            ttl = await self.store.ttl(key)
            if ttl is None:
                # Only happens when the expiry call after creation was lost;
                # applying it now starts the window rather than extending it.
                await self.store.expire(key, window_seconds)
                return window_seconds
        except StoreUnavailableError as exc:
            self.logger.warning("Rate limit TTL unavailable", key=key, error=str(exc))
            return window_seconds
        return max(1, ttl)

    def _record(self, config: RateLimitConfig, decision: RateLimitDecision) -> RateLimitDecision:
        if self.metrics:
            self.metrics.record_rate_limit_decision(config.name, decision.outcome.value)
        return decision


def get_client_address(request: Request) -> Optional[str]:
    """Extract the caller address, preferring the first X-Forwarded-For hop.

    A forwarded header whose first hop is blank yields ``None`` (the limiter
    then fails open) rather than the proxy's own peer address.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or None

    if request.client and request.client.host:
        return request.client.host
    return None


class RateLimitGuard:
    """Applies the limiter to inbound FastAPI requests."""

    def __init__(self, rate_limiter: FixedWindowRateLimiter):
        self.rate_limiter = rate_limiter

    async def check_request(self, request: Request, config: RateLimitConfig) -> RateLimitDecision:
        """Check rate limit for request."""
        return await self.rate_limiter.check_and_count(get_client_address(request), config)
