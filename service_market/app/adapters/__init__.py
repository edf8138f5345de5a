"""
Adapters for external services used by the market data service.

- coingecko_client: upstream market data provider
"""

from .coingecko_client import CoinGeckoClient

__all__ = ["CoinGeckoClient"]
