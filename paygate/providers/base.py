"""
Abstract payment gateway interface.

Both the real SmartGateway client and the deterministic mock implement this
interface. Gateways only talk to the bank: persistence is always the
caller's job, and no gateway method retries on its own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional

from paygate.config import Settings
from paygate.providers.formatting import format_amount, format_phone_number, parse_customer_name
from paygate.providers.ids import generate_customer_id, generate_order_id
from paygate.signing import verify_signature
from paygate.status.classifier import resolve_status_id


@dataclass
class Customer:
    """Payer identity sent with a session request."""

    email: str
    phone: str = ""
    name: str = ""
    customer_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def names(self) -> tuple[str, str]:
        if self.first_name or self.last_name:
            return self.first_name or "", self.last_name or self.first_name or ""
        return parse_customer_name(self.name)


@dataclass
class SessionResult:
    order_id: str
    session_id: Optional[str]
    customer_id: str
    payment_links: dict[str, str] = field(default_factory=dict)
    redirect_url: Optional[str] = None
    status: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], order_id: str, customer_id: str) -> "SessionResult":
        links = dict(payload.get("payment_links") or {})
        return cls(
            order_id=payload.get("order_id") or order_id,
            session_id=payload.get("session_id") or payload.get("id"),
            customer_id=customer_id,
            payment_links=links,
            redirect_url=payload.get("redirect_url") or links.get("web"),
            status=payload.get("status"),
            raw=dict(payload),
        )


@dataclass
class StatusResult:
    """
    Structured order-status response.

    ``status_id`` is the only field safe to branch on; ``status`` is a
    display label whose casing and spelling vary between responses.
    """

    order_id: str
    status_id: Optional[int]
    status: str
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    payment_method_type: Optional[str] = None
    txn_detail: dict[str, Any] = field(default_factory=dict)
    gateway_response: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], order_id: str) -> "StatusResult":
        label = payload.get("status") or payload.get("order_status") or "UNKNOWN"
        amount = payload.get("amount")
        return cls(
            order_id=payload.get("order_id") or order_id,
            status_id=resolve_status_id(payload.get("status_id"), label),
            status=str(label),
            transaction_id=payload.get("txn_id") or payload.get("transaction_id"),
            amount=Decimal(str(amount)) if amount not in (None, "") else None,
            currency=payload.get("currency"),
            payment_method=payload.get("payment_method"),
            payment_method_type=payload.get("payment_method_type"),
            txn_detail=dict(payload.get("txn_detail") or {}),
            gateway_response=dict(payload.get("payment_gateway_response") or {}),
            raw=dict(payload),
        )


@dataclass
class RefundResult:
    order_id: str
    refund_ref_no: str
    success: bool
    status: str
    refund_id: Optional[str] = None
    amount: Optional[str] = None
    error: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], order_id: str, refund_ref_no: str) -> "RefundResult":
        status = str(payload.get("status") or "pending").lower()
        return cls(
            order_id=payload.get("order_id") or order_id,
            refund_ref_no=payload.get("refund_ref_no") or refund_ref_no,
            success=status != "failed",
            status=status,
            refund_id=payload.get("refund_id") or payload.get("id"),
            amount=payload.get("refund_amount") or payload.get("amount"),
            error=payload.get("error_message") if status == "failed" else None,
            raw=dict(payload),
        )


class PaymentGateway(ABC):
    """Base class for gateway clients. Construction fails fast on bad config."""

    def __init__(self, settings: Settings):
        settings.require_credentials()
        self.settings = settings

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier (e.g. 'smartgateway', 'mock_gateway')."""
        ...

    @abstractmethod
    async def create_session(
        self,
        order_id: str,
        amount,
        currency: str,
        customer: Customer,
        description: str = "",
        return_url: Optional[str] = None,
    ) -> SessionResult:
        """
        Create a hosted payment session.

        Raises:
            GatewayError: On a non-2xx response or transport failure.
        """
        ...

    @abstractmethod
    async def get_status(self, order_id: str) -> StatusResult:
        """Fetch the bank's current view of an order."""
        ...

    @abstractmethod
    async def process_refund(self, order_id: str, amount, note: str = "") -> RefundResult:
        """Submit a refund under a freshly generated refund reference."""
        ...

    def verify_signature(self, params: Mapping[str, Any]) -> bool:
        """Verify an inbound callback against the configured response key."""
        return verify_signature(params, self.settings.gateway_response_key)

    @staticmethod
    def new_order_id() -> str:
        return generate_order_id()

    def build_session_body(
        self,
        order_id: str,
        amount,
        currency: str,
        customer: Customer,
        description: str,
        return_url: Optional[str],
    ) -> dict[str, str]:
        first_name, last_name = customer.names()
        return {
            "order_id": order_id,
            "amount": format_amount(amount),
            "currency": currency,
            "customer_id": customer.customer_id or generate_customer_id(customer.email or order_id),
            "customer_email": customer.email,
            "customer_phone": format_phone_number(customer.phone) if customer.phone else "",
            "payment_page_client_id": self.settings.payment_page_client_id,
            "return_url": return_url or self.settings.resolved_return_url,
            "description": description or f"Payment for order {order_id}",
            "first_name": first_name,
            "last_name": last_name,
        }
