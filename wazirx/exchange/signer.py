"""
Request signing for authenticated WazirX calls.

The canonical string is every ``key=value`` pair of the request mapping,
keys sorted ascending, joined with ``&`` and URI-encoded. The signature is the
hex HMAC-SHA256 of that string under the API secret. Because keys are sorted
the signature never depends on insertion order.

The canonical string is only ever hashed. What goes on the wire is the same
pairs form-encoded per value, so reserved characters inside values (``#``,
``&``, ``=``, ``+``) reach the exchange intact.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

from wazirx.exchange.constants import SIGNATURE_FIELD

# Characters left untouched by JavaScript's encodeURI(), which the exchange
# uses when it rebuilds the string on its side.
_URI_SAFE = ";,/?:@&=+$-_.!~*'()#"


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def canonical_string(mapping: Mapping[str, Any]) -> str:
    """URI-encoded ``k=v&...`` over sorted keys. ``None`` values are dropped."""
    pairs = [
        f"{key}={_stringify(mapping[key])}"
        for key in sorted(mapping, key=str)
        if mapping[key] is not None
    ]
    return quote("&".join(pairs), safe=_URI_SAFE)


def sign(secret: str, mapping: Mapping[str, Any]) -> Tuple[str, str]:
    """Return ``(canonical_string, signature)`` for ``mapping``."""
    canonical = canonical_string(mapping)
    signature = hmac.new(
        secret.encode("utf-8"), canonical.encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return canonical, signature


@dataclass(frozen=True)
class SignedRequest:
    canonical_string: str
    signature: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def wire_items(self) -> List[Tuple[str, str]]:
        """Payload pairs in sorted key order, signature last."""
        items = [
            (str(key), _stringify(self.payload[key]))
            for key in sorted(self.payload, key=str)
            if key != SIGNATURE_FIELD and self.payload[key] is not None
        ]
        if self.signature is not None:
            items.append((SIGNATURE_FIELD, self.signature))
        return items

    @property
    def encoded(self) -> str:
        """Wire form: every value percent-encoded, signature appended last."""
        return urlencode(self.wire_items, quote_via=quote)


class RequestSigner:
    """Holds the API secret and signs request mappings."""

    def __init__(self, api_secret: str):
        self._secret = api_secret or ""

    def sign(self, mapping: Mapping[str, Any]) -> Tuple[str, str]:
        return sign(self._secret, mapping)

    def build(self, mapping: Mapping[str, Any], *, is_public: bool = False) -> SignedRequest:
        """
        Produce the ``SignedRequest`` for ``mapping``.

        Public requests get the canonical encoding without a signature.
        """
        payload = {k: v for k, v in mapping.items() if v is not None}
        if is_public:
            return SignedRequest(canonical_string(payload), None, payload)
        canonical, signature = self.sign(payload)
        payload[SIGNATURE_FIELD] = signature
        return SignedRequest(canonical, signature, payload)
