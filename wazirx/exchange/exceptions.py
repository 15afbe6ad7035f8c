"""Typed exception hierarchy for exchange operations.

Enables callers to distinguish transient vs permanent failures
and apply appropriate retry strategies. Expected outcomes (limit hits,
bans, timeouts) travel inside the dispatch engine as ``ErrorResult`` values
and are only turned into exceptions at the public boundary.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class ErrorKind(enum.Enum):
    RATE_LIMITED = "rate_limited"
    BANNED = "banned"
    GATEWAY_TIMEOUT = "gateway_timeout"
    EXCHANGE_ERROR = "exchange_error"
    RETRY_BUDGET_EXHAUSTED = "retry_budget_exhausted"
    INVALID_REQUEST = "invalid_request"


class ExchangeError(Exception):
    """Base class for all exchange-related errors.

    Raised as-is for remote failures that are neither limit, ban nor timeout;
    ``message`` then carries the exchange's own error text when it sent one.
    """

    status_code = 400
    kind = ErrorKind.EXCHANGE_ERROR

    def __init__(self, message: str = "Exchange error", *, http_status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.http_status = http_status

    @property
    def retry_after(self) -> Optional[float]:
        return None

    def serialize(self) -> List[Dict[str, Any]]:
        return [{"message": self.message, "type": "exchange_error"}]


class TransientExchangeError(ExchangeError):
    """Temporary failure that may succeed on retry (limit, ban, timeout)."""

    def serialize(self) -> List[Dict[str, Any]]:
        return [{"message": self.message or "Retry after 2 seconds"}]


class RateLimitExceeded(TransientExchangeError):
    """Per-endpoint request limit hit (429). Caller should back off and retry."""

    status_code = 429
    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        endpoint: str = "",
        retry_after: float = 0.0,
        http_status: Optional[int] = None,
    ):
        super().__init__(message, http_status=http_status)
        self.endpoint = endpoint
        self._retry_after = retry_after

    @property
    def retry_after(self) -> float:
        return self._retry_after


class Banned(TransientExchangeError):
    """Credential/IP banned by the exchange (418). No request goes out until expiry."""

    status_code = 418
    kind = ErrorKind.BANNED

    def __init__(
        self,
        message: str = "Banned by exchange",
        *,
        retry_after: float = 0.0,
        http_status: Optional[int] = None,
    ):
        super().__init__(message, http_status=http_status)
        self._retry_after = retry_after

    @property
    def retry_after(self) -> float:
        return self._retry_after


class GatewayTimeout(TransientExchangeError):
    """Exchange did not answer within the request timeout."""

    status_code = 504
    kind = ErrorKind.GATEWAY_TIMEOUT

    def __init__(self, message: str = "Gateway timeout", *, endpoint: str = ""):
        super().__init__(message)
        self.endpoint = endpoint

    def serialize(self) -> List[Dict[str, Any]]:
        return [{"message": self.message}]


class RetryBudgetExhausted(ExchangeError):
    """Retry budget used up before the request succeeded."""

    status_code = 4290
    kind = ErrorKind.RETRY_BUDGET_EXHAUSTED

    def __init__(
        self,
        message: str = "Max limit reached. Retry after some time",
        *,
        last_error: Optional[ErrorResult] = None,
    ):
        super().__init__(message)
        self.last_error = last_error

    @property
    def retry_after(self) -> Optional[float]:
        return self.last_error.retry_after_seconds if self.last_error else None

    def serialize(self) -> List[Dict[str, Any]]:
        return [{"message": self.message or "Retry after 2 seconds"}]


class PermanentExchangeError(ExchangeError):
    """Non-recoverable failure; retrying the same request will not help."""


class InvalidRequest(PermanentExchangeError):
    """Request is missing its URL or method."""

    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str = "Invalid request data"):
        super().__init__(message)

    def serialize(self) -> List[Dict[str, Any]]:
        return [{"message": self.message}]


@dataclass(frozen=True)
class ErrorResult:
    """Classified failure of a single dispatch attempt."""

    kind: ErrorKind
    message: str
    retry_after_seconds: Optional[float] = None
    endpoint: str = ""
    status_code: Optional[int] = None

    @property
    def is_transient(self) -> bool:
        return self.kind in (ErrorKind.RATE_LIMITED, ErrorKind.BANNED, ErrorKind.GATEWAY_TIMEOUT)

    def to_exception(self) -> ExchangeError:
        if self.kind is ErrorKind.RATE_LIMITED:
            return RateLimitExceeded(
                self.message,
                endpoint=self.endpoint,
                retry_after=self.retry_after_seconds or 0.0,
                http_status=self.status_code,
            )
        if self.kind is ErrorKind.BANNED:
            return Banned(
                self.message,
                retry_after=self.retry_after_seconds or 0.0,
                http_status=self.status_code,
            )
        if self.kind is ErrorKind.GATEWAY_TIMEOUT:
            return GatewayTimeout(self.message, endpoint=self.endpoint)
        if self.kind is ErrorKind.INVALID_REQUEST:
            return InvalidRequest(self.message)
        if self.kind is ErrorKind.RETRY_BUDGET_EXHAUSTED:
            return RetryBudgetExhausted(self.message)
        return ExchangeError(self.message, http_status=self.status_code)
