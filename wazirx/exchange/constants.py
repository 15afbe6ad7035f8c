"""WazirX REST constants shared by the dispatch engine and the endpoint wrappers."""

from __future__ import annotations

import enum

BASE_URL = "https://api.wazirx.com/sapi/v1/"

# Validity window sent as ``recvWindow`` and used as the default HTTP timeout (ms).
RESPONSE_WINDOW = 2000
RETRY_COUNT = 0

CONTENT_TYPE = "application/x-www-form-urlencoded"
API_KEY_HEADER = "X-Api-Key"
RETRY_AFTER_HEADER = "Retry-After"

# HTTP 429: request rate limit broken for an endpoint.
# HTTP 418: IP auto-banned for continuing to send requests after 429s.
STATUS_RATE_LIMITED = 429
STATUS_BANNED = 418

DEFAULT_LIMIT_RETRY_AFTER = 1
DEFAULT_BAN_RETRY_AFTER = 10

# Waits at or under this are slept through by the retry loop; longer ones fail fast.
MAX_INLINE_WAIT_MS = 2000

# Request fields recomputed on every attempt.
RECV_WINDOW_FIELD = "recvWindow"
TIMESTAMP_FIELD = "timestamp"
SIGNATURE_FIELD = "signature"
VOLATILE_FIELDS = (RECV_WINDOW_FIELD, TIMESTAMP_FIELD, SIGNATURE_FIELD)

KEY_PREFIX = "WazirX"
TICKER_CACHE_KEY = KEY_PREFIX + ":Ticker:{symbol}"
TICKERS_CACHE_KEY = KEY_PREFIX + ":Tickers"
TICKER_CACHE_TTL_SECONDS = 5


class RequestMethod(str, enum.Enum):
    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"
