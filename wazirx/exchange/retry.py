"""
Bounded retry around ``Dispatcher``.

The loop carries ``(spec, budget)``:

- budget <= 0 fails with ``RetryBudgetExhausted`` before any transport call
- a ban or endpoint window that clears within ``max_inline_wait_ms`` is slept
  through without spending budget; anything longer fails fast
- a timeout strips the volatile fields and spends one unit of budget
- a 429/418 from the exchange spends one unit while budget > 1
- every other failure is raised unchanged
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from wazirx.core.logger import get_logger
from wazirx.exchange.constants import MAX_INLINE_WAIT_MS, STATUS_BANNED, STATUS_RATE_LIMITED
from wazirx.exchange.dispatcher import Dispatcher, RequestSpec, admission_error
from wazirx.exchange.exceptions import ErrorKind, ErrorResult, RetryBudgetExhausted

logger = get_logger("retry")

Sleep = Callable[[float], Awaitable[None]]


class RetryingDispatcher:
    """Wraps a ``Dispatcher`` in the wait/retry protocol."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        max_inline_wait_ms: int = MAX_INLINE_WAIT_MS,
        sleep: Optional[Sleep] = None,
    ):
        self.dispatcher = dispatcher
        self.rate_limiter = dispatcher.rate_limiter
        self.max_inline_wait_ms = int(max_inline_wait_ms)
        self._sleep: Sleep = sleep or asyncio.sleep

    async def send_with_retry(self, spec: RequestSpec, retry_budget: int) -> httpx.Response:
        spec.validate()
        credential_id = self.dispatcher.credential_id
        budget = int(retry_budget)
        current = spec
        last_error: Optional[ErrorResult] = None
        waits = 0

        while True:
            if budget <= 0:
                logger.warning(
                    "Retry budget exhausted",
                    endpoint=spec.url,
                    last_error=last_error.kind.value if last_error else None,
                )
                raise RetryBudgetExhausted(
                    "[WazirX] Max limit reached. Retry after some time",
                    last_error=last_error,
                )

            # Ban gate, then endpoint gate. Only the endpoint check-and-increment is atomic.
            admission = self.rate_limiter.admit(credential_id, current.url, current.limit_per_sec)
            if not admission.accepted:
                if admission.wait_ms <= self.max_inline_wait_ms:
                    waits += 1
                    logger.info(
                        "Waiting for rate window",
                        endpoint=current.url,
                        reason=admission.status.value,
                        wait_ms=admission.wait_ms,
                        budget=budget,
                    )
                    await self._sleep(admission.wait_ms / 1000.0)
                    continue
                raise admission_error(admission, current.url).to_exception()

            outcome = await self.dispatcher.execute(current)
            if outcome.ok:
                if waits or budget != retry_budget:
                    logger.debug(
                        "Request succeeded after retry",
                        endpoint=current.url,
                        waits=waits,
                        budget_left=budget,
                    )
                return outcome.response

            error = outcome.error
            last_error = error

            if error.kind is ErrorKind.GATEWAY_TIMEOUT:
                logger.warning("Request timed out, retrying", endpoint=current.url, budget=budget - 1)
                current = current.without_volatile()
                budget -= 1
                continue

            # The dispatcher has already recorded the 429/418 into the limiter.
            if error.status_code in (STATUS_RATE_LIMITED, STATUS_BANNED) and budget > 1:
                logger.warning(
                    "Exchange throttled request, retrying",
                    endpoint=current.url,
                    status_code=error.status_code,
                    retry_after=error.retry_after_seconds,
                    budget=budget - 1,
                )
                budget -= 1
                continue

            raise error.to_exception()
