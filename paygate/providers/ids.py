"""
Identifier generation for orders, refunds and customers.

Order ids combine a millisecond timestamp with two independent random
components, so concurrent callers cannot collide and the caller never
chooses the id.
"""

import hashlib
import secrets
import time
import uuid


def _millis() -> int:
    return time.time_ns() // 1_000_000


def generate_order_id() -> str:
    """``ORD`` + epoch ms + 3 random digits + 8 random hex chars."""
    return f"ORD{_millis()}{secrets.randbelow(1000):03d}{uuid.uuid4().hex[:8]}"


def generate_refund_ref() -> str:
    return f"REF{_millis()}{secrets.token_hex(4)}"


def generate_customer_id(seed: str) -> str:
    """``CUST`` + short hash of the email (or order id) + epoch ms."""
    digest = hashlib.md5(seed.encode("utf-8")).hexdigest()[:8]
    return f"CUST{digest}{_millis()}"
