"""
Error taxonomy for the gateway integration.

Configuration problems are fatal at startup, gateway errors carry the HTTP
status and raw body so callers can choose a retry policy, and signature
failures are kept apart from ordinary processing errors because they are
security events.
"""

from typing import Optional


class PaygateError(Exception):
    """Base exception for the payment gateway integration."""


class ConfigurationError(PaygateError):
    """Missing or invalid gateway credentials or environment."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class GatewayError(PaygateError):
    """Non-2xx response (or transport failure) from the bank gateway."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 500,
        body: str = "",
        retriable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.retriable = retriable


class RateLimitError(GatewayError):
    """429 Too Many Requests from the gateway."""

    def __init__(self, message: str = "Rate limited", body: str = "", retry_after: float | None = None):
        super().__init__(message, status_code=429, body=body, retriable=True)
        self.retry_after = retry_after


class PermanentError(GatewayError):
    """Non-retriable error (bad request, unknown order, auth failure)."""

    def __init__(self, message: str, status_code: int = 400, body: str = ""):
        super().__init__(message, status_code=status_code, body=body, retriable=False)


class GatewayNetworkError(GatewayError):
    """The request never produced an HTTP response."""

    def __init__(self, message: str):
        super().__init__(message, status_code=None, body="", retriable=True)


class SignatureVerificationError(PaygateError):
    """Inbound callback whose signature is missing or does not match."""

    def __init__(self, order_id: Optional[str], message: str = "Invalid callback signature"):
        super().__init__(message)
        self.order_id = order_id


class PersistenceError(PaygateError):
    """A canonical ledger write failed."""


class ImmutableRecordError(PersistenceError):
    """Attempt to update or delete an append-only ledger row."""
