"""
Market data service for the Crypto Dashboard API.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Query, Request, Response

from shared.base_service import BaseService
from shared.errors import RateLimitError, ServiceError, StoreUnavailableError, UpstreamFetchError
from shared.retry import RetryConfig

from service_market.app.adapters import CoinGeckoClient
from service_market.app.caching import CacheAside, CacheDuration
from service_market.app.domain import (
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
from service_market.app.ratelimit import (
    FixedWindowRateLimiter,
    RateLimitDecision,
    RateLimitGuard,
    build_rate_limit_profiles,
)
from service_market.app.ratelimit.profiles import COIN_DETAIL, RELAXED, RESTRICTED, STANDARD
from service_market.app.store import KeyValueStore, RedisStore


class MarketService(BaseService):
    """Market data service implementation."""

    def __init__(
        self,
        *,
        store: Optional[KeyValueStore] = None,
        upstream_client: Optional[CoinGeckoClient] = None,
        **config_overrides: Any,
    ):
        super().__init__("market", 8000, **config_overrides)

        self.store = store or RedisStore(
            self.config.redis_url,
            socket_timeout=self.config.redis_socket_timeout,
            socket_connect_timeout=self.config.redis_connect_timeout,
            logger=self.log_context.get_logger("market.store.redis"),
        )
        self.cache = CacheAside(
            self.store,
            metrics=self.metrics,
            logger=self.log_context.get_logger("market.cache"),
        )
        self.rate_limiter = FixedWindowRateLimiter(
            self.store,
            metrics=self.metrics,
            logger=self.log_context.get_logger("market.rate_limiter"),
        )
        self.rate_limit_guard = RateLimitGuard(self.rate_limiter)
        self.rate_limit_profiles = build_rate_limit_profiles(self.config)
        self.cache_durations = CacheDuration.from_config(self.config)

        self.upstream = upstream_client or CoinGeckoClient(
            self.config.coingecko_base_url,
            api_key=self.config.coingecko_api_key,
            timeout=self.config.upstream_timeout_seconds,
            retry_config=RetryConfig(
                max_attempts=self.config.upstream_max_attempts,
                base_delay=0.5,
                max_delay=5.0,
            ),
            logger=self.log_context.get_logger("market.coingecko"),
        )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.store.close()

        self._setup_market_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.market_service = self

    async def _check_dependencies(self) -> Dict[str, str]:
        try:
            healthy = await self.store.ping()
        except StoreUnavailableError as exc:
            self.logger.warning("Store health check failed", error=str(exc))
            healthy = False
        return {"store": "ok" if healthy else "error"}

    async def _enforce_rate_limit(self, request: Request, response: Response, profile: str) -> RateLimitDecision:
        """Count the request against ``profile`` and publish the rate limit headers."""
        decision = await self.rate_limit_guard.check_request(request, self.rate_limit_profiles[profile])
        # error handlers build fresh responses and re-apply the headers from here
        request.state.rate_limit = decision
        if not decision.allowed:
            raise RateLimitError(decision)
        response.headers.update(decision.headers())
        return decision

    async def _serve_cached(
        self,
        response: Response,
        key: str,
        ttl_seconds: int,
        compute: Callable[[], Awaitable[Any]],
        failure_message: str,
    ) -> Any:
        """Cache-aside read; upstream failures become a 500 with diagnostics."""
        try:
            result = await self.cache.fetch(key, ttl_seconds, compute)
        except UpstreamFetchError as exc:
            self.metrics.record_error("upstream_fetch")
            raise ServiceError(failure_message, {"reason": exc.message, **exc.details}) from exc

        response.headers["X-Cache"] = result.status.name
        return result.value

    def _setup_market_routes(self):
        """Set up dashboard data routes."""

        @self.app.get("/api/coins")
        async def list_coins(
            request: Request,
            response: Response,
            limit: int = Query(100, ge=1, le=250),
        ):
            """Top coins by market cap."""
            await self._enforce_rate_limit(request, response, STANDARD)

            async def compute():
                # both calls settle before a failure propagates; no orphaned fetch
                results = await asyncio.gather(
                    self.upstream.get_markets(limit),
                    self.upstream.get_global(),
                    return_exceptions=True,
                )
                for outcome in results:
                    if isinstance(outcome, BaseException):
                        raise outcome
                markets, global_data = results
                return build_coin_summaries(markets, global_data)

            return await self._serve_cached(
                response,
                markets_cache_key(limit),
                self.cache_durations.medium,
                compute,
                "Failed to fetch coins data",
            )

        @self.app.get("/api/coins/{coin_id}")
        async def get_coin(coin_id: str, request: Request, response: Response):
            """Coin detail."""
            validate_coin_id(coin_id)
            await self._enforce_rate_limit(request, response, COIN_DETAIL)

            async def compute():
                return build_coin_detail(await self.upstream.get_coin(coin_id))

            return await self._serve_cached(
                response,
                coin_details_cache_key(coin_id),
                self.cache_durations.medium,
                compute,
                "Failed to fetch coin details",
            )

        @self.app.get("/api/coins/{coin_id}/history")
        async def get_coin_history(
            coin_id: str,
            request: Request,
            response: Response,
            range_value: str = Query("7d", alias="range", max_length=8),
        ):
            """Price history for a coin over a named range."""
            validate_coin_id(coin_id)
            await self._enforce_rate_limit(request, response, RESTRICTED)
            normalized_range, days = resolve_history_range(range_value)

            async def compute():
                return build_price_history(await self.upstream.get_market_chart(coin_id, days))

            return await self._serve_cached(
                response,
                coin_history_cache_key(coin_id, normalized_range),
                history_ttl(normalized_range, self.cache_durations),
                compute,
                "Failed to fetch price history",
            )

        @self.app.get("/api/market/overview")
        async def market_overview(request: Request, response: Response):
            """Global market headline figures."""
            await self._enforce_rate_limit(request, response, RELAXED)

            async def compute():
                return build_market_overview(await self.upstream.get_global())

            return await self._serve_cached(
                response,
                MARKET_OVERVIEW_CACHE_KEY,
                self.cache_durations.medium,
                compute,
                "Failed to fetch market overview data",
            )


def create_app(**kwargs: Any):
    """Create FastAPI application."""
    service = MarketService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = MarketService()
    service.run()
