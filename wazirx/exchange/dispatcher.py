"""
Single-attempt request dispatch.

``Dispatcher.attempt`` runs one pass of admission -> volatile field injection
-> signing -> HTTP and returns a ``DispatchOutcome``; limit hits, bans and
timeouts come back as an ``ErrorResult`` instead of being raised, so the retry
loop can branch on them. ``Dispatcher.send`` is the raising wrapper for callers
that do not retry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional

import httpx

from wazirx.core.logger import get_logger, log_performance
from wazirx.exchange.constants import (
    CONTENT_TYPE,
    RECV_WINDOW_FIELD,
    RESPONSE_WINDOW,
    STATUS_BANNED,
    STATUS_RATE_LIMITED,
    TIMESTAMP_FIELD,
    VOLATILE_FIELDS,
    RequestMethod,
)
from wazirx.exchange.error_classifier import ErrorClassifier
from wazirx.exchange.exceptions import ErrorKind, ErrorResult, InvalidRequest
from wazirx.exchange.rate_limiter import Admission, AdmissionStatus, RateLimiter
from wazirx.exchange.signer import RequestSigner, SignedRequest

logger = get_logger("dispatcher")


@dataclass(frozen=True)
class RequestSpec:
    """Everything needed to send one logical request. Never mutated in place."""

    url: Optional[str]
    method: Optional[RequestMethod]
    params: Dict[str, Any] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)
    limit_per_sec: int = 1
    is_public: bool = False
    recv_window_ms: Optional[int] = None

    def validate(self) -> None:
        if not self.url or not self.method:
            raise InvalidRequest("Invalid request data")
        if not isinstance(self.method, RequestMethod):
            try:
                RequestMethod(str(self.method).upper())
            except ValueError:
                raise InvalidRequest(f"Unsupported method: {self.method}") from None

    @property
    def http_method(self) -> RequestMethod:
        if isinstance(self.method, RequestMethod):
            return self.method
        return RequestMethod(str(self.method).upper())

    @property
    def signs_in_query(self) -> bool:
        return self.http_method is RequestMethod.GET

    def without_volatile(self) -> RequestSpec:
        """Copy with ``recvWindow``, ``timestamp`` and ``signature`` removed."""
        return replace(
            self,
            params={k: v for k, v in self.params.items() if k not in VOLATILE_FIELDS},
            body={k: v for k, v in self.body.items() if k not in VOLATILE_FIELDS},
        )


@dataclass
class DispatchOutcome:
    response: Optional[httpx.Response] = None
    error: Optional[ErrorResult] = None
    signed: Optional[SignedRequest] = None
    # False when the attempt never reached the transport (local admission reject).
    sent: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.response is not None


def admission_error(admission: Admission, endpoint: str) -> ErrorResult:
    """Translate a rejected ``Admission`` into the matching ``ErrorResult``."""
    seconds = admission.retry_after_seconds
    if admission.status is AdmissionStatus.REJECTED_BANNED:
        return ErrorResult(
            kind=ErrorKind.BANNED,
            message=f"[WazirX] Banned. Retry after {seconds:g} seconds",
            retry_after_seconds=seconds,
            endpoint=endpoint,
        )
    return ErrorResult(
        kind=ErrorKind.RATE_LIMITED,
        message=f"[WazirX] Max limit reached for {endpoint}. Retry after {seconds:g} seconds",
        retry_after_seconds=seconds,
        endpoint=endpoint,
    )


class Dispatcher:
    """Executes exactly one HTTP attempt for a ``RequestSpec``."""

    def __init__(
        self,
        api_key: str,
        signer: RequestSigner,
        rate_limiter: RateLimiter,
        transport: httpx.AsyncClient,
        *,
        recv_window_ms: int = RESPONSE_WINDOW,
        classifier: Optional[ErrorClassifier] = None,
        time_ms: Optional[Callable[[], int]] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.signer = signer
        self.rate_limiter = rate_limiter
        self.transport = transport
        self.recv_window_ms = int(recv_window_ms)
        self.classifier = classifier or ErrorClassifier()
        self._time_ms = time_ms or (lambda: int(time.time() * 1000))
        self._last_timestamp = 0

    @property
    def credential_id(self) -> str:
        return self.api_key

    def _next_timestamp(self) -> int:
        # Strictly increasing so a retried payload never reuses a timestamp.
        ts = max(int(self._time_ms()), self._last_timestamp + 1)
        self._last_timestamp = ts
        return ts

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    def prepare(self, spec: RequestSpec) -> SignedRequest:
        """Inject fresh volatile fields and sign. ``spec`` itself is untouched."""
        fresh = spec.without_volatile()
        mapping = dict(fresh.params if spec.signs_in_query else fresh.body)
        mapping[RECV_WINDOW_FIELD] = spec.recv_window_ms or self.recv_window_ms
        mapping[TIMESTAMP_FIELD] = self._next_timestamp()
        # Only GET may skip signing; bodies are always signed.
        is_public = spec.is_public and spec.signs_in_query
        return self.signer.build(mapping, is_public=is_public)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, spec: RequestSpec) -> DispatchOutcome:
        """Send an already-admitted request and classify the result."""
        spec.validate()
        signed = self.prepare(spec)
        endpoint = spec.url
        method = spec.http_method

        try:
            with log_performance(logger, "WazirX request", endpoint=endpoint, method=method.value):
                if method is RequestMethod.GET:
                    url = f"{endpoint}?{signed.encoded}" if signed.encoded else endpoint
                    response = await self.transport.request(method.value, url)
                else:
                    response = await self.transport.request(
                        method.value,
                        endpoint,
                        content=signed.encoded.encode("utf-8"),
                        headers={"Content-Type": CONTENT_TYPE},
                    )
        except httpx.TransportError as e:
            return DispatchOutcome(
                error=self.classifier.classify(e, endpoint=endpoint),
                signed=signed,
                sent=True,
            )

        if response.is_success:
            return DispatchOutcome(response=response, signed=signed, sent=True)

        error = self.classifier.classify(response, endpoint=endpoint)
        self.record_server_signal(spec, error)
        return DispatchOutcome(response=response, error=error, signed=signed, sent=True)

    def record_server_signal(self, spec: RequestSpec, error: ErrorResult) -> None:
        """Mirror a 429/418 into the shared limiter state."""
        if error.status_code == STATUS_RATE_LIMITED:
            self.rate_limiter.record_rate_limited(
                self.credential_id, spec.url, spec.limit_per_sec, error.retry_after_seconds
            )
        elif error.status_code == STATUS_BANNED:
            self.rate_limiter.record_ban(self.credential_id, error.retry_after_seconds)

    async def attempt(self, spec: RequestSpec) -> DispatchOutcome:
        spec.validate()
        admission = self.rate_limiter.admit(self.credential_id, spec.url, spec.limit_per_sec)
        if not admission.accepted:
            return DispatchOutcome(error=admission_error(admission, spec.url))
        return await self.execute(spec)

    async def send(self, spec: RequestSpec) -> httpx.Response:
        """One attempt, no retry. Raises the typed error on any failure."""
        outcome = await self.attempt(spec)
        if outcome.error is not None:
            raise outcome.error.to_exception()
        return outcome.response
