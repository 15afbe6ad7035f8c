"""WazirXClient endpoint wrappers, caching and configuration wiring."""

from __future__ import annotations

import json

import httpx
import pytest
from structlog.testing import capture_logs

from tests.conftest import API_KEY, API_SECRET, ScriptedExchange
from wazirx.core.config import ClientConfig
from wazirx.exchange.client import WazirXClient
from wazirx.exchange.constants import CONTENT_TYPE
from wazirx.exchange.exceptions import ExchangeError, GatewayTimeout, RateLimitExceeded
from wazirx.exchange.store import MemoryCache, TTLStore


def make_client(exchange, clock, sleep, *, store=None, **kwargs) -> WazirXClient:
    return WazirXClient(
        API_KEY,
        API_SECRET,
        store=store if store is not None else TTLStore(clock=clock),
        cache=MemoryCache(TTLStore(clock=clock)),
        transport=httpx.MockTransport(exchange),
        sleep=sleep,
        **kwargs,
    )


TICKER = {"symbol": "btcinr", "lastPrice": "5000000.0"}


class TestTickers:

    @pytest.mark.asyncio
    async def test_ticker_is_cached_for_ttl(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(200, json=TICKER))
        async with make_client(exchange, clock, sleep) as client:
            first = await client.get_ticker("btcinr")
            second = await client.get_ticker("btcinr")
            assert first == second == TICKER
            assert exchange.calls == 1

            clock.advance(5)
            await client.get_ticker("btcinr")
            assert exchange.calls == 2

    @pytest.mark.asyncio
    async def test_ticker_request_is_public(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(200, json=TICKER))
        async with make_client(exchange, clock, sleep) as client:
            await client.get_ticker("btcinr")

        request = exchange.requests[0]
        assert request.url.path == "/sapi/v1/ticker/24hr"
        payload = exchange.payload()
        assert payload["symbol"] == "btcinr"
        assert "signature" not in payload

    @pytest.mark.asyncio
    async def test_cache_is_keyed_per_symbol(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(200, json=TICKER))
        async with make_client(exchange, clock, sleep) as client:
            await client.get_ticker("btcinr")
            clock.advance(1)
            await client.get_ticker("ethinr")
            assert exchange.calls == 2
            assert json.loads(await client.cache.get("WazirX:Ticker:btcinr")) == TICKER

    @pytest.mark.asyncio
    async def test_all_tickers(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(200, json=[TICKER]))
        async with make_client(exchange, clock, sleep) as client:
            assert await client.get_tickers() == [TICKER]
            assert await client.get_tickers() == [TICKER]
        assert exchange.calls == 1
        assert exchange.requests[0].url.path == "/sapi/v1/tickers/24hr"

    @pytest.mark.asyncio
    async def test_failed_fetch_is_not_cached(self, clock, sleep):
        exchange = ScriptedExchange(
            httpx.Response(400, json={"message": "Invalid symbol"}),
            httpx.Response(200, json=TICKER),
        )
        async with make_client(exchange, clock, sleep) as client:
            with pytest.raises(ExchangeError):
                await client.get_ticker("btcinr")
            clock.advance(1)
            assert await client.get_ticker("btcinr") == TICKER


class TestOrders:

    @pytest.mark.asyncio
    async def test_place_order_posts_signed_form(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(201, json={"id": 42, "status": "wait"}))
        async with make_client(exchange, clock, sleep) as client:
            result = await client.place_order("btcinr", "5000000", "0.001", side="sell")

        assert result == {"id": 42, "status": "wait"}
        request = exchange.requests[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == CONTENT_TYPE
        assert request.headers["X-Api-Key"] == API_KEY
        payload = exchange.payload()
        assert payload["symbol"] == "btcinr"
        assert payload["type"] == "limit"
        assert payload["side"] == "sell"
        assert payload["price"] == "5000000"
        assert payload["quantity"] == "0.001"
        assert "clientOrderId" not in payload
        assert "signature" in payload

    @pytest.mark.asyncio
    async def test_place_order_is_never_retried(self, clock, sleep):
        exchange = ScriptedExchange(httpx.ReadTimeout, httpx.Response(201, json={}))
        async with make_client(exchange, clock, sleep, retry_count=3) as client:
            with pytest.raises(GatewayTimeout):
                await client.place_order("btcinr", "1", "1")
        assert exchange.calls == 1

    @pytest.mark.asyncio
    async def test_cancel_order(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(200, json={"status": "cancel"}))
        async with make_client(exchange, clock, sleep) as client:
            assert await client.cancel_order("btcinr", "abc-1") == {"status": "cancel"}

        assert exchange.requests[0].method == "DELETE"
        payload = exchange.payload()
        assert payload["clientOrderId"] == "abc-1"
        assert payload["symbol"] == "btcinr"

    @pytest.mark.asyncio
    async def test_order_status_retries_when_asked(self, clock, sleep):
        exchange = ScriptedExchange(httpx.ReadTimeout, httpx.Response(200, json={"status": "done"}))
        async with make_client(exchange, clock, sleep) as client:
            result = await client.get_order_status("abc-1", retry_count=2)

        assert result == {"status": "done"}
        assert exchange.calls == 2
        assert exchange.payload()["clientOrderId"] == "abc-1"

    @pytest.mark.asyncio
    async def test_order_status_failure_is_raised(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(404, json={"message": "Order not found"}))
        async with make_client(exchange, clock, sleep) as client:
            with pytest.raises(ExchangeError, match="Order not found"):
                await client.get_order_status("missing")


class TestAccount:

    @pytest.mark.asyncio
    async def test_configured_retry_count_is_the_default(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(429), httpx.Response(200, json=[]))
        async with make_client(exchange, clock, sleep, retry_count=2) as client:
            assert await client.get_funds() == []
        assert exchange.calls == 2
        assert sleep.calls == [1.0]

    @pytest.mark.asyncio
    async def test_without_retries_limit_hit_is_raised(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(200, json=[]))
        async with make_client(exchange, clock, sleep) as client:
            await client.get_funds()
            with pytest.raises(RateLimitExceeded):
                await client.get_funds()
        assert exchange.calls == 1

    @pytest.mark.asyncio
    async def test_clients_sharing_a_store_share_limits(self, clock, sleep):
        exchange = ScriptedExchange(httpx.Response(200, json=[]))
        store = TTLStore(clock=clock)
        async with make_client(exchange, clock, sleep, store=store) as a:
            async with make_client(exchange, clock, sleep, store=store) as b:
                await a.get_funds()
                with pytest.raises(RateLimitExceeded):
                    await b.get_funds()


class TestLifecycle:

    def test_from_config(self):
        config = ClientConfig(
            exchange={"api_key": " k ", "api_secret": "s", "recv_window_ms": 5000, "retry_count": 2},
            rate_limit={"window_seconds": 2.0, "max_inline_wait_ms": 500},
            cache={"ticker_ttl_seconds": 9},
        )
        client = WazirXClient.from_config(config)

        assert client.api_key == "k"
        assert client.enabled
        assert client.recv_window_ms == 5000
        assert client.retry_count == 2
        assert client.ticker_ttl_seconds == 9
        assert client.rate_limiter.window_seconds == 2.0

    def test_timeout_defaults_to_recv_window(self):
        client = WazirXClient("k", "s", recv_window_ms=3000)
        assert client.timeout_seconds == 3.0

    def test_disabled_without_credentials(self):
        assert not WazirXClient("", "secret").enabled

    @pytest.mark.asyncio
    async def test_close_releases_http_client(self, clock, sleep):
        client = make_client(ScriptedExchange(), clock, sleep)
        async with client:
            assert client._client is not None
        assert client._client is None

    @pytest.mark.asyncio
    async def test_lazy_http_client_is_reported(self, clock, sleep):
        client = make_client(ScriptedExchange(httpx.Response(200, json=[])), clock, sleep)
        try:
            with capture_logs() as logs:
                await client.get_funds()
        finally:
            await client.close()

        events = [e["event"] for e in logs if e["log_level"] == "warning"]
        assert any("created lazily" in e for e in events)

    @pytest.mark.asyncio
    async def test_context_manager_does_not_warn(self, clock, sleep):
        with capture_logs() as logs:
            async with make_client(ScriptedExchange(httpx.Response(200, json=[])), clock, sleep) as client:
                await client.get_funds()

        assert not [e for e in logs if "created lazily" in e["event"]]
