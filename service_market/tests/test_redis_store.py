"""
Unit tests for the Redis-backed store adapter.
"""

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from shared.errors import StoreUnavailableError
from service_market.app.store import RedisStore


class TestRedisStore:
    """Test cases for RedisStore."""

    @pytest.fixture
    def client(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, client):
        return RedisStore("redis://localhost:6379/0", client=client)

    @pytest.mark.asyncio
    async def test_get_returns_value(self, store, client):
        client.get.return_value = '{"a": 1}'

        assert await store.get("market:overview") == '{"a": 1}'
        client.get.assert_awaited_once_with("market:overview")

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self, store, client):
        client.get.return_value = b"value"

        assert await store.get("k") == "value"

    @pytest.mark.asyncio
    async def test_get_absent(self, store, client):
        client.get.return_value = None

        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_set_uses_expiry(self, store, client):
        await store.set("coin:btc:details", "{}", 300)

        client.set.assert_awaited_once_with("coin:btc:details", "{}", ex=300)

    @pytest.mark.asyncio
    async def test_incr_returns_int(self, store, client):
        client.incr.return_value = 4

        assert await store.incr("rate-limit:1.2.3.4") == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw,expected", [(42, 42), (-1, None), (-2, None)])
    async def test_ttl_translation(self, store, client, raw, expected):
        client.ttl.return_value = raw

        assert await store.ttl("k") == expected

    @pytest.mark.asyncio
    async def test_expire(self, store, client):
        client.expire.return_value = 1

        assert await store.expire("k", 60) is True
        client.expire.assert_awaited_once_with("k", 60)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        redis.ConnectionError("refused"),
        redis.TimeoutError("timed out"),
        OSError("network unreachable"),
    ])
    async def test_client_errors_become_store_unavailable(self, store, client, error):
        client.get.side_effect = error

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.get("k")

        assert exc_info.value.operation == "get"
        assert exc_info.value.details == {"key": "k"}

    @pytest.mark.asyncio
    async def test_ping(self, store, client):
        client.ping.return_value = True

        assert await store.ping() is True

    @pytest.mark.asyncio
    async def test_close(self, store, client):
        await store.close()

        client.aclose.assert_awaited_once()
