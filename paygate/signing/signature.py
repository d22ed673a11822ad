"""
Callback signature canonicalization and verification.

The gateway signs every callback with HMAC-SHA256 over a canonical
parameter string:

  1. Drop ``signature`` and ``signature_algorithm``
  2. Sort the remaining keys lexicographically
  3. Join as ``key=value`` pairs with ``&``
  4. URL-encode the joined string (encodeURIComponent rules)
  5. HMAC-SHA256 with the response key, base64 the digest
  6. URL-encode the base64 digest

Both encoding passes are part of the counterparty's contract and must be
reproduced byte for byte.
"""

import base64
import hashlib
import hmac
import logging
from typing import Any, Mapping
from urllib.parse import quote, unquote

logger = logging.getLogger("paygate.signing")

EXCLUDED_KEYS = frozenset({"signature", "signature_algorithm"})

# encodeURIComponent leaves these unescaped in addition to letters, digits and "-_.~"
_COMPONENT_SAFE = "!*'()"


def encode_component(value: str) -> str:
    """URL-encode a string exactly like JavaScript's encodeURIComponent."""
    return quote(value, safe=_COMPONENT_SAFE)


def _stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def canonical_string(params: Mapping[str, Any]) -> str:
    """Sorted ``key=value&...`` string over every non-signature parameter."""
    keys = sorted(k for k in params if k not in EXCLUDED_KEYS)
    return "&".join(f"{key}={_stringify(params[key])}" for key in keys)


def _raw_digest(params: Mapping[str, Any], secret: str) -> str:
    encoded = encode_component(canonical_string(params))
    mac = hmac.new(secret.encode("utf-8"), encoded.encode("utf-8"), hashlib.sha256)
    return base64.b64encode(mac.digest()).decode("ascii")


def compute_signature(params: Mapping[str, Any], secret: str) -> str:
    """Signature as the gateway transmits it (URL-encoded base64 HMAC)."""
    return encode_component(_raw_digest(params, secret))


def verify_signature(params: Mapping[str, Any], secret: str) -> bool:
    """
    Check the ``signature`` field of an inbound parameter set.

    The gateway has been seen sending the signature both URL-encoded and
    already decoded, so either form is accepted. A missing signature is
    always a failure.
    """
    received = params.get("signature")
    if not received:
        logger.warning("Callback for order %s carries no signature", params.get("order_id", "-"))
        return False

    received = str(received)
    raw = _raw_digest(params, secret)
    expected = encode_component(raw)

    if hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8")):
        return True
    if hmac.compare_digest(unquote(received).encode("utf-8"), raw.encode("utf-8")):
        return True

    logger.warning("Signature mismatch for order %s", params.get("order_id", "-"))
    return False
