"""Request-body formatting helpers for the gateway's session API."""

import re
from decimal import ROUND_HALF_UP, Decimal

_PHONE_RE = re.compile(r"^(\+91[-\s]?)?[6-9]\d{9}$")


def to_decimal(amount) -> Decimal:
    """Coerce int/float/str/Decimal to a 2 dp Decimal, avoiding float drift."""
    return Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_amount(amount) -> str:
    """The gateway expects amounts as strings with exactly two decimals."""
    return f"{to_decimal(amount):.2f}"


def parse_customer_name(full_name: str) -> tuple[str, str]:
    """Split a full name into (first, last); single names repeat as last name."""
    parts = (full_name or "").strip().split()
    if not parts:
        return "", ""
    first = parts[0]
    last = " ".join(parts[1:]) or first
    return first, last


def validate_phone_number(phone: str) -> bool:
    """Indian mobile numbers: 10 digits starting 6-9, optional +91 prefix."""
    return bool(_PHONE_RE.match(re.sub(r"[\s-]", "", phone or "")))


def format_phone_number(phone: str) -> str:
    cleaned = re.sub(r"[\s-]", "", phone or "")
    if cleaned.startswith("+91"):
        return cleaned
    if cleaned.startswith("91") and len(cleaned) == 12:
        return f"+{cleaned}"
    if len(cleaned) == 10:
        return f"+91 {cleaned}"
    return phone
