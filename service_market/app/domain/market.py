"""
Market data payloads served to the dashboard.

Upstream CoinGecko JSON is reshaped into the camelCase documents the
front-end consumes. Every payload is a plain JSON-compatible dict so it can be
stored by the cache-aside layer unchanged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from shared.errors import UpstreamFetchError, ValidationError

from ..caching import CacheDuration, make_cache_key


_COIN_ID_PATTERN = re.compile(r"^[a-z0-9-]{1,100}$")

HISTORY_RANGES: Dict[str, int] = {
    "1d": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
}
DEFAULT_HISTORY_RANGE = "7d"


@dataclass(frozen=True)
class CoinSummary:
    """Row of the top coins table."""

    id: str
    rank: int
    name: str
    symbol: str
    price: Optional[float]
    market_cap: Optional[float]
    market_cap_percentage: float
    volume: Optional[float]
    price_change_24h: float
    image: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rank": self.rank,
            "name": self.name,
            "symbol": self.symbol,
            "price": self.price,
            "marketCap": self.market_cap,
            "marketCapPercentage": self.market_cap_percentage,
            "volume": self.volume,
            "priceChange24h": self.price_change_24h,
            "image": self.image,
        }


@dataclass(frozen=True)
class CoinDetail:
    """Coin detail page payload."""

    summary: CoinSummary
    description: str
    market_cap_rank: Optional[int]
    high_24h: Optional[float]
    low_24h: Optional[float]
    price_change_percentage_7d: float
    price_change_percentage_30d: float
    total_supply: Optional[float]
    circulating_supply: Optional[float]
    max_supply: Optional[float]
    ath_price: Optional[float]
    ath_date: Optional[str]
    atl_price: Optional[float]
    atl_date: Optional[str]
    website: str
    twitter: Optional[str]
    reddit: Optional[str]
    github: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        payload = self.summary.to_dict()
        payload.update({
            "description": self.description,
            "marketCapRank": self.market_cap_rank,
            "high24h": self.high_24h,
            "low24h": self.low_24h,
            "priceChangePercentage7d": self.price_change_percentage_7d,
            "priceChangePercentage30d": self.price_change_percentage_30d,
            "totalSupply": self.total_supply,
            "circulatingSupply": self.circulating_supply,
            "maxSupply": self.max_supply,
            "athPrice": self.ath_price,
            "athDate": self.ath_date,
            "atlPrice": self.atl_price,
            "atlDate": self.atl_date,
            "website": self.website,
            "twitter": self.twitter,
            "reddit": self.reddit,
            "github": self.github,
        })
        return payload


@dataclass(frozen=True)
class PricePoint:
    timestamp: int
    price: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "price": self.price}


@dataclass(frozen=True)
class MarketOverview:
    total_market_cap: Optional[float]
    total_volume: Optional[float]
    btc_dominance: float
    active_currencies: Optional[int]
    market_cap_change: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalMarketCap": self.total_market_cap,
            "totalVolume": self.total_volume,
            "btcDominance": self.btc_dominance,
            "activeCurrencies": self.active_currencies,
            "marketCapChange": self.market_cap_change,
        }


def validate_coin_id(coin_id: str) -> str:
    """Reject ids that could not be a CoinGecko slug."""
    if not coin_id or not _COIN_ID_PATTERN.match(coin_id):
        raise ValidationError("Invalid coin ID", {"coin_id": coin_id})
    return coin_id


def resolve_history_range(range_value: Optional[str]) -> Tuple[str, int]:
    """Map a requested range to ``(normalized_range, days)``; unknown ranges become 7d."""
    if range_value in HISTORY_RANGES:
        return range_value, HISTORY_RANGES[range_value]
    return DEFAULT_HISTORY_RANGE, HISTORY_RANGES[DEFAULT_HISTORY_RANGE]


def history_ttl(range_value: str, durations: CacheDuration) -> int:
    """Intraday history refreshes faster than longer ranges."""
    return durations.medium if range_value == "1d" else durations.long


def markets_cache_key(limit: int) -> str:
    return make_cache_key("coins", "markets", limit)


def coin_details_cache_key(coin_id: str) -> str:
    return make_cache_key("coin", coin_id, "details")


def coin_history_cache_key(coin_id: str, range_value: str) -> str:
    return make_cache_key("coin", coin_id, "history", range_value)


MARKET_OVERVIEW_CACHE_KEY = make_cache_key("market", "overview")


def _malformed(resource: str, exc: Exception) -> UpstreamFetchError:
    return UpstreamFetchError(
        message=f"Malformed {resource} payload",
        details={"resource": resource, "error": f"{type(exc).__name__}: {exc}"}
    )


def _usd(section: Mapping[str, Any], field: str) -> Any:
    value = section.get(field)
    if isinstance(value, Mapping):
        return value.get("usd")
    return None


def build_coin_summaries(markets: Sequence[Mapping[str, Any]], global_data: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Combine ``/coins/markets`` rows with ``/global`` dominance figures."""
    try:
        percentages = global_data["data"]["market_cap_percentage"]
        rows = []
        for index, coin in enumerate(markets):
            symbol = coin["symbol"]
            rows.append(CoinSummary(
                id=coin["id"],
                rank=index + 1,
                name=coin["name"],
                symbol=symbol,
                price=coin.get("current_price"),
                market_cap=coin.get("market_cap"),
                market_cap_percentage=percentages.get(symbol.lower()) or 0,
                volume=coin.get("total_volume"),
                price_change_24h=coin.get("price_change_percentage_24h") or 0,
                image=coin.get("image"),
            ).to_dict())
        return rows
    except (KeyError, TypeError, AttributeError) as exc:
        raise _malformed("coins markets", exc) from exc


def build_coin_detail(coin: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten a ``/coins/{id}`` document."""
    try:
        market = coin["market_data"]
        links = coin.get("links") or {}
        homepage = links.get("homepage") or []
        repos = (links.get("repos_url") or {}).get("github") or []
        summary = CoinSummary(
            id=coin["id"],
            rank=coin.get("market_cap_rank"),
            name=coin["name"],
            symbol=coin["symbol"],
            price=_usd(market, "current_price"),
            market_cap=_usd(market, "market_cap"),
            market_cap_percentage=market.get("market_cap_change_percentage_24h") or 0,
            volume=_usd(market, "total_volume"),
            price_change_24h=market.get("price_change_percentage_24h") or 0,
            image=(coin.get("image") or {}).get("large"),
        )
        return CoinDetail(
            summary=summary,
            description=(coin.get("description") or {}).get("en") or "",
            market_cap_rank=coin.get("market_cap_rank"),
            high_24h=_usd(market, "high_24h"),
            low_24h=_usd(market, "low_24h"),
            price_change_percentage_7d=market.get("price_change_percentage_7d") or 0,
            price_change_percentage_30d=market.get("price_change_percentage_30d") or 0,
            total_supply=market.get("total_supply"),
            circulating_supply=market.get("circulating_supply"),
            max_supply=market.get("max_supply"),
            ath_price=_usd(market, "ath"),
            ath_date=_usd(market, "ath_date"),
            atl_price=_usd(market, "atl"),
            atl_date=_usd(market, "atl_date"),
            website=(homepage[0] if homepage else "") or "",
            twitter=links.get("twitter_screen_name"),
            reddit=links.get("subreddit_url"),
            github=repos[0] if repos else None,
        ).to_dict()
    except (KeyError, TypeError, AttributeError) as exc:
        raise _malformed("coin detail", exc) from exc


def build_price_history(chart: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """``market_chart.prices`` pairs as ``{timestamp, price}`` points."""
    try:
        return [PricePoint(timestamp=int(ts), price=price).to_dict() for ts, price in chart["prices"]]
    except (KeyError, TypeError, ValueError) as exc:
        raise _malformed("price history", exc) from exc


def build_market_overview(global_data: Mapping[str, Any]) -> Dict[str, Any]:
    """Headline figures from ``/global``."""
    try:
        data = global_data["data"]
        return MarketOverview(
            total_market_cap=_usd(data, "total_market_cap"),
            total_volume=_usd(data, "total_volume"),
            btc_dominance=data["market_cap_percentage"].get("btc") or 0,
            active_currencies=data.get("active_cryptocurrencies"),
            market_cap_change=data.get("market_cap_change_percentage_24h_usd"),
        ).to_dict()
    except (KeyError, TypeError, AttributeError) as exc:
        raise _malformed("market overview", exc) from exc
