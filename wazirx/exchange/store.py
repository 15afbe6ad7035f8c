"""
TTL key-value store backing rate-limit/ban bookkeeping and response caching.

One ``TTLStore`` is built per process and shared by every dispatcher for a
credential. Expired entries are dropped lazily on access. The clock is
injectable so tests can drive window rollover without sleeping.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple


class RateLimitStore(Protocol):
    """Store capability consumed by ``RateLimiter``."""

    def now(self) -> float: ...

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None: ...

    def get_ttl(self, key: str) -> Optional[float]: ...

    def increment_within(
        self, key: str, limit: int, ttl_seconds: float
    ) -> Tuple[bool, int, Optional[float]]: ...


@dataclass
class _Entry:
    value: Any
    expires_at: Optional[float]  # epoch seconds, None = no expiry


class TTLStore:
    """Thread-safe in-memory TTL store."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def _live(self, key: str, now: float) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and now >= entry.expires_at:
            del self._data[key]
            return None
        return entry

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry.value if entry else None

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value``; ``ttl_seconds`` of None or <= 0 means no expiry."""
        with self._lock:
            expires_at = self._clock() + float(ttl_seconds) if ttl_seconds and ttl_seconds > 0 else None
            self._data[key] = _Entry(value, expires_at)

    def get_ttl(self, key: str) -> Optional[float]:
        """Absolute expiry (epoch seconds) of ``key``, None if missing or persistent."""
        with self._lock:
            entry = self._live(key, self._clock())
            return entry.expires_at if entry else None

    def increment_within(
        self, key: str, limit: int, ttl_seconds: float
    ) -> Tuple[bool, int, Optional[float]]:
        """
        Atomic admission primitive for windowed counters.

        - missing/expired key: create ``count=1`` expiring in ``ttl_seconds``
        - ``count < limit``: increment, keeping the existing expiry
        - otherwise: leave untouched

        Returns ``(admitted, count, expires_at)``.
        """
        with self._lock:
            now = self._clock()
            entry = self._live(key, now)
            if entry is None:
                entry = _Entry(1, now + float(ttl_seconds))
                self._data[key] = entry
                return True, 1, entry.expires_at
            count = int(entry.value or 0)
            if count < limit:
                entry.value = count + 1
                return True, entry.value, entry.expires_at
            return False, count, entry.expires_at


class MemoryCache:
    """Async response cache with the redis-py ``get``/``set(ex=...)`` call shape."""

    def __init__(self, store: Optional[TTLStore] = None):
        self._store = store or TTLStore()

    async def get(self, key: str) -> Optional[str]:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: Optional[float] = None) -> bool:
        self._store.set(key, value, ex)
        return True
