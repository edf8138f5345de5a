"""Market data transforms and cache policy."""

from .market import (
    MARKET_OVERVIEW_CACHE_KEY,
    build_coin_detail,
    build_coin_summaries,
    build_market_overview,
    build_price_history,
    coin_details_cache_key,
    coin_history_cache_key,
    history_ttl,
    markets_cache_key,
    resolve_history_range,
    validate_coin_id,
)

__all__ = [
    "MARKET_OVERVIEW_CACHE_KEY",
    "build_coin_detail",
    "build_coin_summaries",
    "build_market_overview",
    "build_price_history",
    "coin_details_cache_key",
    "coin_history_cache_key",
    "history_ttl",
    "markets_cache_key",
    "resolve_history_range",
    "validate_coin_id",
]
