"""
CoinGecko market data client.
"""

from typing import Any, Dict, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import UpstreamFetchError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception


def _is_provider_fault(exc: Exception) -> bool:
    """Client errors such as an unknown coin id do not trip the breaker."""
    if isinstance(exc, UpstreamFetchError):
        status = exc.details.get("status_code")
        if status is not None and 400 <= status < 500 and status != 429:
            return False
    return True


class CoinGeckoClient:
    """Client for the upstream market data provider."""

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Any = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.logger = logger or get_logger("market.coingecko")
        self._transport = transport

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            name="coingecko",
            should_trip=_is_provider_fault,
        )
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )
        self._send = retry_on_exception(
            (httpx.TransportError,),
            config=self.retry_config,
            logger=self.logger,
        )(self._send_once)

    async def get_markets(self, limit: int) -> Any:
        """Top coins by market cap."""
        return await self._get_json("/coins/markets", {
            "vs_currency": "usd",
            "order": "market_cap_desc",
            "per_page": limit,
            "page": 1,
            "sparkline": "false",
            "price_change_percentage": "24h",
        })

    async def get_global(self) -> Any:
        """Global market statistics."""
        return await self._get_json("/global")

    async def get_coin(self, coin_id: str) -> Any:
        """Detailed coin data with market data only."""
        return await self._get_json(f"/coins/{coin_id}", {
            "localization": "false",
            "tickers": "false",
            "market_data": "true",
            "community_data": "false",
            "developer_data": "false",
            "sparkline": "false",
        })

    async def get_market_chart(self, coin_id: str, days: int) -> Any:
        """Price history for ``days`` days."""
        return await self._get_json(f"/coins/{coin_id}/market_chart", {
            "vs_currency": "usd",
            "days": days,
        })

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    async def _send_once(self, url: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.get(url, params=params, headers=self._headers())

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Execute a GET with retries + circuit breaker, returning decoded JSON."""
        url = f"{self.base_url}{path}"

        async def _request():
            response = await self._send(url, params)

            if not response.is_success:
                self.logger.error(
                    "Upstream request failed",
                    url=url,
                    params=params,
                    status_code=response.status_code,
                    response=response.text[:500]
                )
                raise UpstreamFetchError(
                    message=f"Unexpected status {response.status_code}",
                    details={"url": url, "status_code": response.status_code, "body": response.text[:500]}
                )

            try:
                data = response.json()
            except ValueError as exc:
                raise UpstreamFetchError(
                    message="Malformed JSON payload",
                    details={"url": url, "error": str(exc)}
                ) from exc

            self.logger.debug("Upstream data retrieved", url=url, params=params)
            return data

        try:
            return await self.circuit_breaker.call(_request)
        except UpstreamFetchError:
            raise
        except RetryError as exc:
            raise UpstreamFetchError(
                message=str(exc.last_exception) or type(exc.last_exception).__name__,
                details={"url": url, "attempts": exc.attempts}
            ) from exc
        except CircuitBreakerOpenException as exc:
            self.logger.warning("Upstream circuit open, rejecting call", url=url)
            raise UpstreamFetchError(message=str(exc), details={"url": url, "circuit": "open"}) from exc
