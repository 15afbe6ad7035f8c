"""
Client-side mirror of the exchange's rate limits.

Per-(credential, endpoint) counters live for one window (1s by default) and
are incremented only when a request is admitted; incrementing keeps the
window's original expiry so a steady stream cannot postpone the reset.
A per-credential ban flag, recorded from a 418, supersedes every endpoint
check until it expires.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Optional

from wazirx.core.logger import get_logger
from wazirx.exchange.constants import (
    DEFAULT_BAN_RETRY_AFTER,
    DEFAULT_LIMIT_RETRY_AFTER,
    KEY_PREFIX,
)
from wazirx.exchange.store import RateLimitStore

logger = get_logger("rate_limiter")


class AdmissionStatus(enum.Enum):
    ACCEPTED = "accepted"
    REJECTED_ENDPOINT = "rejected_endpoint"
    REJECTED_BANNED = "rejected_banned"


@dataclass(frozen=True)
class Admission:
    status: AdmissionStatus
    wait_ms: int = 0

    @property
    def accepted(self) -> bool:
        return self.status is AdmissionStatus.ACCEPTED

    @property
    def retry_after_seconds(self) -> float:
        return self.wait_ms / 1000.0


ACCEPTED = Admission(AdmissionStatus.ACCEPTED)


class RateLimiter:
    """Admits, rejects or delays requests against a shared ``RateLimitStore``."""

    def __init__(self, store: RateLimitStore, window_seconds: float = 1.0):
        self.store = store
        self.window_seconds = float(window_seconds)

    @staticmethod
    def endpoint_key(credential_id: str, endpoint: str) -> str:
        return f"{KEY_PREFIX}:{credential_id}:{endpoint}"

    @staticmethod
    def ban_key(credential_id: str) -> str:
        return f"{KEY_PREFIX}:{credential_id}:isIpBlocked"

    def _wait_ms(self, expires_at: Optional[float]) -> int:
        if expires_at is None:
            return 0
        return max(0, math.ceil(round((expires_at - self.store.now()) * 1000, 3)))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def ban_wait_ms(self, credential_id: str) -> Optional[int]:
        """Milliseconds left on an active ban, None when not banned."""
        key = self.ban_key(credential_id)
        if not self.store.get(key):
            return None
        return self._wait_ms(self.store.get_ttl(key))

    def is_banned(self, credential_id: str) -> bool:
        return self.ban_wait_ms(credential_id) is not None

    def admit(self, credential_id: str, endpoint: str, limit_per_sec: int) -> Admission:
        ban_wait = self.ban_wait_ms(credential_id)
        if ban_wait is not None:
            return Admission(AdmissionStatus.REJECTED_BANNED, ban_wait)

        admitted, count, expires_at = self.store.increment_within(
            self.endpoint_key(credential_id, endpoint),
            max(1, int(limit_per_sec)),
            self.window_seconds,
        )
        if admitted:
            return ACCEPTED
        wait_ms = self._wait_ms(expires_at)
        logger.debug(
            "Endpoint limit reached",
            endpoint=endpoint,
            count=count,
            limit_per_sec=limit_per_sec,
            wait_ms=wait_ms,
        )
        return Admission(AdmissionStatus.REJECTED_ENDPOINT, wait_ms)

    # ------------------------------------------------------------------
    # Server signals
    # ------------------------------------------------------------------

    def record_rate_limited(
        self,
        credential_id: str,
        endpoint: str,
        limit_per_sec: int,
        retry_after: Optional[float] = None,
    ) -> float:
        """Saturate the endpoint counter for ``retry_after`` seconds (429)."""
        ttl = retry_after if retry_after and retry_after > 0 else DEFAULT_LIMIT_RETRY_AFTER
        self.store.set(self.endpoint_key(credential_id, endpoint), max(1, int(limit_per_sec)), ttl)
        logger.warning("Exchange rate limit hit", endpoint=endpoint, retry_after=ttl)
        return ttl

    def record_ban(self, credential_id: str, retry_after: Optional[float] = None) -> float:
        """Block every request for the credential for ``retry_after`` seconds (418)."""
        ttl = retry_after if retry_after and retry_after > 0 else DEFAULT_BAN_RETRY_AFTER
        self.store.set(self.ban_key(credential_id), True, ttl)
        logger.error("Exchange ban recorded", retry_after=ttl)
        return ttl
