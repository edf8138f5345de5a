"""
Unit tests for the fixed-window rate limiter.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from shared.test_helpers import InMemoryStore, UnavailableStore
from service_market.app.ratelimit import (
    FixedWindowRateLimiter,
    RateLimitConfig,
    RateLimitGuard,
    RateLimitOutcome,
    build_rate_limit_profiles,
    get_client_address,
)
from service_market.app.ratelimit.profiles import COIN_DETAIL, RELAXED, RESTRICTED, STANDARD


class TestFixedWindowRateLimiter:
    """Test cases for FixedWindowRateLimiter."""

    @pytest.fixture
    def config(self):
        return RateLimitConfig(max_requests=3, window_ms=60_000, message="Slow down", name="test")

    @pytest.fixture
    def rate_limiter(self, store, clock, metrics):
        return FixedWindowRateLimiter(store, clock=clock, metrics=metrics)

    @pytest.mark.asyncio
    async def test_boundary_allows_then_denies(self, rate_limiter, config):
        """Three requests pass, the fourth is denied with a bounded retry-after."""
        decisions = [await rate_limiter.check_and_count("10.0.0.1", config) for _ in range(4)]

        assert [d.outcome for d in decisions] == [
            RateLimitOutcome.ALLOWED,
            RateLimitOutcome.ALLOWED,
            RateLimitOutcome.ALLOWED,
            RateLimitOutcome.DENIED,
        ]
        denied = decisions[-1]
        assert 1 <= denied.retry_after <= 60
        assert denied.remaining == 0
        assert denied.message == "Slow down"

    @pytest.mark.asyncio
    async def test_remaining_counts_down(self, rate_limiter, config):
        remaining = [(await rate_limiter.check_and_count("10.0.0.1", config)).remaining for _ in range(4)]

        assert remaining == [2, 1, 0, 0]

    @pytest.mark.asyncio
    async def test_clients_are_isolated(self, rate_limiter, config):
        """Each client address has its own counter."""
        first = [await rate_limiter.check_and_count("10.0.0.1", config) for _ in range(3)]
        second = [await rate_limiter.check_and_count("10.0.0.2", config) for _ in range(3)]

        assert all(d.allowed for d in first + second)
        assert second[0].remaining == 2

    @pytest.mark.asyncio
    async def test_window_reset_after_expiry(self, rate_limiter, config, store):
        """Once the counter is evicted the client starts a fresh window."""
        for _ in range(4):
            await rate_limiter.check_and_count("10.0.0.1", config)

        store.evict(rate_limiter.make_key("10.0.0.1"))
        decision = await rate_limiter.check_and_count("10.0.0.1", config)

        assert decision.outcome is RateLimitOutcome.ALLOWED
        assert decision.remaining == config.max_requests - 1

    @pytest.mark.asyncio
    async def test_window_reset_after_elapsed_time(self, rate_limiter, config, clock):
        for _ in range(4):
            await rate_limiter.check_and_count("10.0.0.1", config)

        clock.advance(60)
        decision = await rate_limiter.check_and_count("10.0.0.1", config)

        assert decision.allowed
        assert decision.count == 1

    @pytest.mark.asyncio
    async def test_window_is_fixed_not_extended(self, rate_limiter, config, store, clock):
        """Later increments never push the expiry forward."""
        key = rate_limiter.make_key("10.0.0.1")
        await rate_limiter.check_and_count("10.0.0.1", config)
        clock.advance(30)
        await rate_limiter.check_and_count("10.0.0.1", config)

        assert await store.ttl(key) == 30
        assert store.operations("expire") == [key]

    @pytest.mark.asyncio
    async def test_denied_requests_still_count(self, rate_limiter, config):
        for _ in range(5):
            decision = await rate_limiter.check_and_count("10.0.0.1", config)

        assert decision.count == 5
        assert not decision.allowed

    @pytest.mark.asyncio
    async def test_expiry_rounds_down_with_one_second_floor(self, store, clock):
        limiter = FixedWindowRateLimiter(store, clock=clock)

        await limiter.check_and_count("a", RateLimitConfig(max_requests=1, window_ms=2_500))
        await limiter.check_and_count("b", RateLimitConfig(max_requests=1, window_ms=400))

        assert await store.ttl(limiter.make_key("a")) == 2
        assert await store.ttl(limiter.make_key("b")) == 1

    @pytest.mark.asyncio
    async def test_headers_and_reset_timestamp(self, rate_limiter, config, clock):
        """Headers carry limit, remaining and an ISO-8601 reset time."""
        decision = await rate_limiter.check_and_count("10.0.0.1", config)
        headers = decision.headers()

        assert headers["X-RateLimit-Limit"] == "3"
        assert headers["X-RateLimit-Remaining"] == "2"
        expected = datetime.fromtimestamp(clock() + 60, tz=timezone.utc)
        assert headers["X-RateLimit-Reset"] == expected.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @pytest.mark.asyncio
    async def test_fail_open_on_store_outage(self, config, metrics):
        """An unreachable store allows every request and emits no headers."""
        limiter = FixedWindowRateLimiter(UnavailableStore(), metrics=metrics)

        decisions = [await limiter.check_and_count("10.0.0.1", config) for _ in range(10)]

        assert all(d.outcome is RateLimitOutcome.BYPASSED for d in decisions)
        assert all(d.allowed and d.headers() == {} for d in decisions)
        assert metrics.sample("rate_limit_decisions_total", {"profile": "test", "outcome": "bypassed"}) == 10.0

    @pytest.mark.asyncio
    async def test_fail_open_when_expire_fails(self, config):
        """A failed expiry on the first request fails open; the next call repairs it."""
        delegate = InMemoryStore()
        store = UnavailableStore(failing={"expire"}, delegate=delegate)
        limiter = FixedWindowRateLimiter(store)

        first = await limiter.check_and_count("10.0.0.1", config)
        assert first.outcome is RateLimitOutcome.BYPASSED

        store.failing = set()
        second = await limiter.check_and_count("10.0.0.1", config)

        assert second.outcome is RateLimitOutcome.ALLOWED
        assert await delegate.ttl(limiter.make_key("10.0.0.1")) == 60

    @pytest.mark.asyncio
    async def test_ttl_read_failure_defaults_to_window(self, config):
        store = UnavailableStore(failing={"ttl"})
        limiter = FixedWindowRateLimiter(store)

        for _ in range(4):
            decision = await limiter.check_and_count("10.0.0.1", config)

        assert decision.outcome is RateLimitOutcome.DENIED
        assert decision.retry_after == 60

    @pytest.mark.asyncio
    async def test_unknown_client_fails_open(self, rate_limiter, config, store):
        for client_key in (None, ""):
            decision = await rate_limiter.check_and_count(client_key, config)
            assert decision.outcome is RateLimitOutcome.BYPASSED
            assert decision.reason == "client_unknown"

        assert store.calls == []

    @pytest.mark.asyncio
    async def test_make_key(self, rate_limiter):
        assert rate_limiter.make_key("127.0.0.1") == "rate-limit:127.0.0.1"


class TestRateLimitConfig:
    """Test cases for RateLimitConfig and profiles."""

    @pytest.mark.parametrize("max_requests,window_ms", [(0, 1000), (-1, 1000), (5, 0), (5, -10)])
    def test_rejects_non_positive_values(self, max_requests, window_ms):
        with pytest.raises(ValueError):
            RateLimitConfig(max_requests=max_requests, window_ms=window_ms)

    def test_is_immutable(self):
        config = RateLimitConfig(max_requests=5, window_ms=1000)
        with pytest.raises(AttributeError):
            config.max_requests = 10

    def test_profiles_from_settings(self):
        settings = MagicMock(
            rate_limit_window_ms=60_000,
            rate_limit_standard_max=30,
            rate_limit_restricted_max=10,
            rate_limit_relaxed_max=60,
            rate_limit_coin_detail_max=20,
        )

        profiles = build_rate_limit_profiles(settings)

        assert profiles[STANDARD].max_requests == 30
        assert profiles[RESTRICTED].max_requests == 10
        assert profiles[RELAXED].max_requests == 60
        assert profiles[COIN_DETAIL].max_requests == 20
        assert profiles[COIN_DETAIL].message == "Rate limit exceeded for coin detail API. Please try again later."
        assert all(p.window_seconds == 60 for p in profiles.values())


class TestClientAddress:
    """Test cases for client address extraction and the guard."""

    @staticmethod
    def _request(headers=None, host="127.0.0.1"):
        request = MagicMock()
        request.headers = headers or {}
        if host is None:
            request.client = None
        else:
            request.client.host = host
        return request

    def test_prefers_first_forwarded_for(self):
        request = self._request({"X-Forwarded-For": " 203.0.113.7 , 10.0.0.1"})
        assert get_client_address(request) == "203.0.113.7"

    def test_falls_back_to_peer(self):
        assert get_client_address(self._request()) == "127.0.0.1"

    def test_blank_first_forwarded_hop_is_unknown(self):
        assert get_client_address(self._request({"X-Forwarded-For": " , 10.0.0.1"})) is None

    @pytest.mark.asyncio
    async def test_blank_forwarded_hop_fails_open(self, store, clock):
        guard = RateLimitGuard(FixedWindowRateLimiter(store, clock=clock))
        config = RateLimitConfig(max_requests=1, window_ms=60_000)

        decision = await guard.check_request(self._request({"X-Forwarded-For": ","}), config)

        assert decision.outcome is RateLimitOutcome.BYPASSED
        assert decision.reason == "client_unknown"
        assert store.operations("incr") == []

    def test_unknown_when_no_source(self):
        assert get_client_address(self._request(host=None)) is None

    @pytest.mark.asyncio
    async def test_guard_keys_on_client_address(self, store, clock):
        limiter = FixedWindowRateLimiter(store, clock=clock)
        guard = RateLimitGuard(limiter)
        config = RateLimitConfig(max_requests=1, window_ms=60_000)

        first = await guard.check_request(self._request({"X-Forwarded-For": "198.51.100.2"}), config)
        second = await guard.check_request(self._request({"X-Forwarded-For": "198.51.100.2"}), config)

        assert first.allowed
        assert not second.allowed
        assert store.operations("incr") == ["rate-limit:198.51.100.2", "rate-limit:198.51.100.2"]
