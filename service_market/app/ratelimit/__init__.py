"""Fixed-window rate limiting."""

from .fixed_window import (
    FixedWindowRateLimiter,
    RateLimitConfig,
    RateLimitDecision,
    RateLimitGuard,
    RateLimitOutcome,
    get_client_address,
)
from .profiles import build_rate_limit_profiles

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitConfig",
    "RateLimitDecision",
    "RateLimitGuard",
    "RateLimitOutcome",
    "build_rate_limit_profiles",
    "get_client_address",
]
