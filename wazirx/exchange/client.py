"""
WazirX REST client.

Owns the ``httpx.AsyncClient`` and the dispatch engine built on it. Endpoint wrappers return decoded JSON; public ticker
responses are cached for a few seconds. Use it as an async context manager so
the connection pool is closed.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import httpx

from wazirx.core.config import ClientConfig
from wazirx.core.logger import get_logger
from wazirx.exchange.constants import (
    API_KEY_HEADER,
    BASE_URL,
    MAX_INLINE_WAIT_MS,
    RESPONSE_WINDOW,
    RETRY_COUNT,
    TICKER_CACHE_KEY,
    TICKER_CACHE_TTL_SECONDS,
    TICKERS_CACHE_KEY,
    RequestMethod,
)
from wazirx.exchange.dispatcher import Dispatcher, RequestSpec
from wazirx.exchange.rate_limiter import RateLimiter
from wazirx.exchange.retry import RetryingDispatcher, Sleep
from wazirx.exchange.signer import RequestSigner
from wazirx.exchange.store import MemoryCache, TTLStore

logger = get_logger("wazirx_client")

# One store per process: every client for the same credential shares its windows.
_DEFAULT_STORE = TTLStore()


class WazirXClient:
    """Async WazirX REST client (funds, tickers, orders)."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = BASE_URL,
        *,
        recv_window_ms: int = RESPONSE_WINDOW,
        retry_count: int = RETRY_COUNT,
        timeout_seconds: Optional[float] = None,
        window_seconds: float = 1.0,
        max_inline_wait_ms: int = MAX_INLINE_WAIT_MS,
        ticker_ttl_seconds: int = TICKER_CACHE_TTL_SECONDS,
        store: Optional[TTLStore] = None,
        cache: Optional[Any] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.api_secret = (api_secret or "").strip()
        self.base_url = base_url or BASE_URL
        self.recv_window_ms = int(recv_window_ms or RESPONSE_WINDOW)
        self.retry_count = int(retry_count or 0)
        # Same budget the exchange gives recvWindow, unless told otherwise.
        self.timeout_seconds = float(timeout_seconds or self.recv_window_ms / 1000.0)
        self.ticker_ttl_seconds = int(ticker_ttl_seconds)
        self.store = store if store is not None else _DEFAULT_STORE
        self.cache = cache if cache is not None else MemoryCache()
        self.rate_limiter = RateLimiter(self.store, window_seconds=window_seconds)
        self._transport = transport
        self._max_inline_wait_ms = max_inline_wait_ms
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None
        self._dispatcher: Dispatcher | None = None
        self._retrying: RetryingDispatcher | None = None

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs: Any) -> WazirXClient:
        ex = config.exchange
        return cls(
            ex.api_key,
            ex.api_secret,
            ex.rest_url,
            recv_window_ms=ex.recv_window_ms,
            retry_count=ex.retry_count,
            timeout_seconds=ex.request_timeout_seconds,
            window_seconds=config.rate_limit.window_seconds,
            max_inline_wait_ms=config.rate_limit.max_inline_wait_ms,
            ticker_ttl_seconds=config.cache.ticker_ttl_seconds,
            **kwargs,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.api_secret)

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                headers={API_KEY_HEADER: self.api_key},
                transport=self._transport,
            )
            self._dispatcher = Dispatcher(
                self.api_key,
                RequestSigner(self.api_secret),
                self.rate_limiter,
                self._client,
                recv_window_ms=self.recv_window_ms,
            )
            self._retrying = RetryingDispatcher(
                self._dispatcher,
                max_inline_wait_ms=self._max_inline_wait_ms,
                sleep=self._sleep,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._dispatcher = None
            self._retrying = None

    async def __aenter__(self) -> WazirXClient:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> None:
        if self._client is None:
            logger.warning(
                "HTTP client created lazily; call close() or use 'async with' to release it",
                base_url=self.base_url,
            )
            await self.initialize()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def request(
        self,
        url: Optional[str],
        method: Optional[RequestMethod],
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        limit_per_sec: int = 1,
        is_public: bool = False,
    ) -> httpx.Response:
        """Single attempt; raises the typed error on rejection or failure."""
        await self._ensure_client()
        spec = RequestSpec(url, method, dict(params or {}), dict(body or {}), limit_per_sec, is_public)
        return await self._dispatcher.send(spec)

    async def retry_request(
        self,
        url: Optional[str],
        method: Optional[RequestMethod],
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        limit_per_sec: int = 1,
        retry_count: Optional[int] = None,
        is_public: bool = False,
    ) -> httpx.Response:
        """Bounded retry; ``retry_count`` defaults to the client's configured count."""
        await self._ensure_client()
        spec = RequestSpec(url, method, dict(params or {}), dict(body or {}), limit_per_sec, is_public)
        budget = self.retry_count if retry_count is None else retry_count
        return await self._retrying.send_with_retry(spec, budget)

    async def _call(
        self,
        url: str,
        method: RequestMethod,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        limit_per_sec: int = 1,
        retry_count: Optional[int] = None,
        is_public: bool = False,
    ) -> Any:
        budget = self.retry_count if retry_count is None else retry_count
        if budget:
            resp = await self.retry_request(
                url, method, params, body, limit_per_sec, budget, is_public
            )
        else:
            resp = await self.request(url, method, params, body, limit_per_sec, is_public)
        return resp.json()

    async def _cached(self, key: str, fetch) -> Any:
        cached = await self.cache.get(key)
        if cached:
            return json.loads(cached)
        data = await fetch()
        await self.cache.set(key, json.dumps(data), ex=self.ticker_ttl_seconds)
        return data

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_funds(self, retry_count: Optional[int] = None) -> Any:
        return await self._call("/funds", RequestMethod.GET, retry_count=retry_count)

    async def get_ticker(self, symbol: str, retry_count: Optional[int] = None) -> Any:
        """24h ticker for one market; served from cache for a few seconds."""
        return await self._cached(
            TICKER_CACHE_KEY.format(symbol=symbol),
            lambda: self._call(
                "/ticker/24hr",
                RequestMethod.GET,
                params={"symbol": symbol},
                retry_count=retry_count,
                is_public=True,
            ),
        )

    async def get_tickers(self, retry_count: Optional[int] = None) -> Any:
        return await self._cached(
            TICKERS_CACHE_KEY,
            lambda: self._call(
                "/tickers/24hr", RequestMethod.GET, retry_count=retry_count, is_public=True
            ),
        )

    async def place_order(
        self,
        symbol: str,
        price: Any,
        quantity: Any,
        *,
        order_type: str = "limit",
        side: str = "buy",
        client_order_id: Optional[str] = None,
    ) -> Any:
        """Place an order. Never retried: a timed-out order may still have been accepted."""
        return await self._call(
            "/order",
            RequestMethod.POST,
            body={
                "symbol": symbol,
                "type": order_type,
                "price": price,
                "quantity": quantity,
                "side": side,
                "clientOrderId": client_order_id,
            },
            limit_per_sec=10,
            retry_count=0,
        )

    async def get_order_status(self, client_order_id: str, retry_count: Optional[int] = None) -> Any:
        try:
            return await self._call(
                "/order",
                RequestMethod.GET,
                params={"clientOrderId": client_order_id},
                limit_per_sec=2,
                retry_count=retry_count,
            )
        except Exception as e:
            logger.warning(
                "Order status lookup failed",
                client_order_id=client_order_id,
                retried=bool(retry_count),
                error=repr(e),
            )
            raise

    async def cancel_order(self, symbol: str, client_order_id: str) -> Any:
        return await self._call(
            "/order",
            RequestMethod.DELETE,
            body={"symbol": symbol, "clientOrderId": client_order_id},
            limit_per_sec=10,
            retry_count=0,
        )
