"""Shared test fixtures and stubs for the WazirX client tests.

Provides a controllable clock, a sleep that advances it, and a scripted
exchange served through ``httpx.MockTransport``.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Union
from urllib.parse import parse_qsl

import httpx
import pytest

from wazirx.core.config import ConfigManager
from wazirx.exchange.constants import API_KEY_HEADER, BASE_URL
from wazirx.exchange.dispatcher import Dispatcher
from wazirx.exchange.rate_limiter import RateLimiter
from wazirx.exchange.retry import RetryingDispatcher
from wazirx.exchange.signer import RequestSigner
from wazirx.exchange.store import TTLStore

API_KEY = "test-key"
API_SECRET = "test-secret"


# ---------------------------------------------------------------------------
# Stub classes
# ---------------------------------------------------------------------------


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def time_ms(self) -> int:
        return int(round(self.now * 1000))


class RecordingSleep:
    """Async sleep stand-in: records each wait and advances the clock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)


Reply = Union[httpx.Response, type, Callable[[httpx.Request], httpx.Response]]


class ScriptedExchange:
    """MockTransport handler replaying ``replies`` in order; the last one repeats.

    A reply may be an ``httpx.Response``, an httpx exception class (raised
    with the request attached) or a callable taking the request.
    """

    def __init__(self, *replies: Reply, clock: Optional[FakeClock] = None) -> None:
        self.replies = list(replies) or [httpx.Response(200, json={})]
        self.requests: List[httpx.Request] = []
        self.clock = clock
        self.elapse_on_call = 0.0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.clock is not None and self.elapse_on_call:
            self.clock.advance(self.elapse_on_call)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, type) and issubclass(reply, httpx.HTTPError):
            raise reply("timed out", request=request)
        if callable(reply) and not isinstance(reply, httpx.Response):
            return reply(request)
        return reply

    @property
    def calls(self) -> int:
        return len(self.requests)

    def payload(self, index: int = -1) -> dict:
        """Decoded query (GET) or form body (POST/DELETE) of a recorded request."""
        request = self.requests[index]
        if request.method == "GET":
            return dict(request.url.params)
        return dict(parse_qsl(request.content.decode("utf-8")))


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def make_dispatcher(
    exchange: ScriptedExchange,
    clock: FakeClock,
    *,
    store: Optional[TTLStore] = None,
    api_key: str = API_KEY,
    api_secret: str = API_SECRET,
) -> Dispatcher:
    """Build a Dispatcher wired to the scripted exchange and fake clock."""
    store = store if store is not None else TTLStore(clock=clock)
    http = httpx.AsyncClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(exchange),
        headers={API_KEY_HEADER: api_key},
    )
    return Dispatcher(
        api_key,
        RequestSigner(api_secret),
        RateLimiter(store),
        http,
        time_ms=clock.time_ms,
    )


def make_retrying(
    exchange: ScriptedExchange,
    clock: FakeClock,
    sleep: RecordingSleep,
    **kwargs: Any,
) -> RetryingDispatcher:
    return RetryingDispatcher(make_dispatcher(exchange, clock, **kwargs), sleep=sleep)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def store(clock: FakeClock) -> TTLStore:
    return TTLStore(clock=clock)


@pytest.fixture(autouse=True)
def reset_config_singleton():
    """Prevent ConfigManager singleton state from leaking between tests."""
    saved_instance = ConfigManager._instance
    saved_config = ConfigManager._config
    yield
    ConfigManager._instance = saved_instance
    ConfigManager._config = saved_config
