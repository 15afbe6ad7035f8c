"""
Error classification for a single dispatch attempt.

Maps whatever the transport produced (an error response, a timeout, a
connection failure) onto an ``ErrorResult`` so the retry loop can decide
without inspecting httpx types itself.
"""

from __future__ import annotations

from typing import Optional, Union

import httpx

from wazirx.core.logger import get_logger
from wazirx.exchange.constants import (
    DEFAULT_BAN_RETRY_AFTER,
    DEFAULT_LIMIT_RETRY_AFTER,
    RETRY_AFTER_HEADER,
    STATUS_BANNED,
    STATUS_RATE_LIMITED,
)
from wazirx.exchange.exceptions import ErrorKind, ErrorResult

logger = get_logger("error_classifier")

RawFailure = Union[httpx.Response, BaseException]


def parse_retry_after(response: Optional[httpx.Response], default: float) -> float:
    """``Retry-After`` in seconds, ``default`` when absent or unparsable."""
    if response is None:
        return float(default)
    raw = response.headers.get(RETRY_AFTER_HEADER)
    if raw is None:
        return float(default)
    try:
        value = float(raw.strip())
    except (TypeError, ValueError):
        return float(default)
    return value if value > 0 else float(default)


def _remote_message(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        message = data.get("message")
        if message:
            return str(message)
    return None


class ErrorClassifier:
    """Centralized failure classification for the dispatch engine."""

    def classify(self, failure: RawFailure, *, endpoint: str = "") -> ErrorResult:
        response: Optional[httpx.Response] = None
        if isinstance(failure, httpx.Response):
            response = failure
        elif isinstance(failure, httpx.HTTPStatusError):
            response = failure.response

        if response is not None:
            return self._classify_response(response, endpoint)

        if isinstance(failure, httpx.TimeoutException):
            return ErrorResult(
                kind=ErrorKind.GATEWAY_TIMEOUT,
                message=f"WazirX server taking too much time to respond for : {endpoint}",
                endpoint=endpoint,
            )

        message = str(failure) or type(failure).__name__
        logger.info("Transport failure", endpoint=endpoint, error=repr(failure))
        return ErrorResult(kind=ErrorKind.EXCHANGE_ERROR, message=message, endpoint=endpoint)

    def _classify_response(self, response: httpx.Response, endpoint: str) -> ErrorResult:
        status = response.status_code
        if status == STATUS_RATE_LIMITED:
            retry_after = parse_retry_after(response, DEFAULT_LIMIT_RETRY_AFTER)
            return ErrorResult(
                kind=ErrorKind.RATE_LIMITED,
                message=f"[WazirX] Max limit reached. Retry after {retry_after:g} seconds",
                retry_after_seconds=retry_after,
                endpoint=endpoint,
                status_code=status,
            )
        if status == STATUS_BANNED:
            retry_after = parse_retry_after(response, DEFAULT_BAN_RETRY_AFTER)
            return ErrorResult(
                kind=ErrorKind.BANNED,
                message=f"[WazirX] Banned. Retry after {retry_after:g} seconds",
                retry_after_seconds=retry_after,
                endpoint=endpoint,
                status_code=status,
            )

        message = _remote_message(response) or f"HTTP {status} {response.reason_phrase}".strip()
        logger.info(
            "Exchange rejected request",
            endpoint=endpoint,
            status_code=status,
            body=response.text[:200],
        )
        return ErrorResult(
            kind=ErrorKind.EXCHANGE_ERROR,
            message=message,
            endpoint=endpoint,
            status_code=status,
        )
