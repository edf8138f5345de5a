"""
Named rate limit profiles applied to endpoint groups.
"""

from typing import Any, Dict

from .fixed_window import RateLimitConfig

STANDARD = "standard"
RESTRICTED = "restricted"
RELAXED = "relaxed"
COIN_DETAIL = "coin_detail"


def build_rate_limit_profiles(config: Any) -> Dict[str, RateLimitConfig]:
    """Build the immutable per-endpoint-class limits from service settings."""
    window_ms = config.rate_limit_window_ms
    return {
        STANDARD: RateLimitConfig(
            max_requests=config.rate_limit_standard_max,
            window_ms=window_ms,
            message="Too many requests, please try again later.",
            name=STANDARD,
        ),
        RESTRICTED: RateLimitConfig(
            max_requests=config.rate_limit_restricted_max,
            window_ms=window_ms,
            message="Rate limit exceeded for resource-intensive operation. Please try again later.",
            name=RESTRICTED,
        ),
        RELAXED: RateLimitConfig(
            max_requests=config.rate_limit_relaxed_max,
            window_ms=window_ms,
            message="Rate limit exceeded. Please try again later.",
            name=RELAXED,
        ),
        COIN_DETAIL: RateLimitConfig(
            max_requests=config.rate_limit_coin_detail_max,
            window_ms=window_ms,
            message="Rate limit exceeded for coin detail API. Please try again later.",
            name=COIN_DETAIL,
        ),
    }
