"""
Payment session, status and audit endpoints.

POST /payments/sessions            Create a payment session for a new order.
GET  /payments/sessions            List recent sessions (operator view).
GET  /payments/sessions/expired    Expired sessions still lacking a final status.
GET  /payments/{order_id}/status   Live status check, payer-safe view.
POST /payments/{order_id}/poll     Poll until terminal (operator view).
POST /payments/{order_id}/refund   Refund a charged order.
GET  /payments/{order_id}/trace    Full audit trail for an order.
"""

import json
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from paygate.api.deps import get_ledger, get_payment_service, get_poller
from paygate.audit.ledger import AuditLedger
from paygate.engine.payments import PaymentRequest, PaymentService
from paygate.engine.poller import StatusPoller
from paygate.models.enums import ObservationSource
from paygate.models.payment import PaymentSession, PaymentStatusHistory, SecurityAuditLog, TransactionDetail
from paygate.providers.base import Customer
from paygate.providers.formatting import validate_phone_number
from paygate.status.classifier import payer_view

router = APIRouter(prefix="/payments", tags=["payments"])


class SessionCreateRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    currency: str = "INR"
    customer_email: str
    customer_phone: str = ""
    customer_name: str = ""
    description: str = ""
    return_url: Optional[str] = None
    service_id: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("customer_phone")
    @classmethod
    def _check_phone(cls, v: str) -> str:
        if v and not validate_phone_number(v):
            raise ValueError("customer_phone must be a 10 digit mobile number, optionally prefixed with +91")
        return v


class SessionCreated(BaseModel):
    order_id: str
    session_id: Optional[str]
    payment_links: dict[str, str]
    redirect_url: Optional[str]


class PayerStatus(BaseModel):
    order_id: str
    payment_state: str  # pending | success | failed
    is_final: bool


class PollRequest(BaseModel):
    max_attempts: Optional[int] = Field(default=None, ge=1, le=120)


class OperatorStatus(BaseModel):
    order_id: str
    status_id: Optional[int]
    status: Optional[str]
    message: Optional[str]
    recommended_action: Optional[str]
    is_terminal: bool
    attempts: int
    max_attempts_reached: bool
    requires_escalation: bool


class RefundRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    note: str = ""


class RefundResponse(BaseModel):
    order_id: str
    refund_ref_no: str
    refund_id: Optional[str]
    success: bool
    status: str


class SessionDetail(BaseModel):
    order_id: str
    gateway_session_id: Optional[str]
    customer_id: str
    customer_email: str
    amount: Optional[str]
    currency: Optional[str]
    session_status: str
    last_status_id: Optional[int]
    payment_link_web: Optional[str]
    environment: Optional[str]
    expires_at: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class TransactionEntry(BaseModel):
    id: int
    source: str
    status: Optional[str]
    status_id: Optional[int]
    transaction_id: Optional[str]
    signature_verified: bool
    gateway_response: Optional[Any] = None
    form_data: Optional[Any] = None
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: Optional[str]


class StatusHistoryEntry(BaseModel):
    id: int
    new_status: str
    previous_status: Optional[str]
    status_id: Optional[int]
    changed_by: str
    note: Optional[str]
    changed_at: Optional[str]


class SecurityEntry(BaseModel):
    id: int
    event_type: str
    severity: str
    description: str
    vulnerability_type: Optional[str]
    event_data: Optional[Any] = None
    created_at: Optional[str]


class AuditTrailResponse(BaseModel):
    order_id: str
    session: Optional[SessionDetail]
    transactions: list[TransactionEntry]
    status_history: list[StatusHistoryEntry]
    security_logs: list[SecurityEntry]


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _loads(raw: Optional[str]) -> Optional[Any]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {"raw": raw}


def _session_to_detail(s: PaymentSession) -> SessionDetail:
    return SessionDetail(
        order_id=s.order_id,
        gateway_session_id=s.gateway_session_id,
        customer_id=s.customer_id,
        customer_email=s.customer_email,
        amount=str(s.amount) if s.amount is not None else None,
        currency=s.currency,
        session_status=s.session_status,
        last_status_id=s.last_status_id,
        payment_link_web=s.payment_link_web,
        environment=s.environment,
        expires_at=_iso(s.expires_at),
        created_at=_iso(s.created_at),
        updated_at=_iso(s.updated_at),
    )


def _transaction_to_entry(t: TransactionDetail) -> TransactionEntry:
    return TransactionEntry(
        id=t.id,
        source=t.source,
        status=t.status,
        status_id=t.status_id,
        transaction_id=t.transaction_id,
        signature_verified=bool(t.signature_verified),
        gateway_response=_loads(t.gateway_response_raw),
        form_data=_loads(t.form_data_received),
        ip_address=t.ip_address,
        user_agent=t.user_agent,
        created_at=_iso(t.created_at),
    )


def _history_to_entry(h: PaymentStatusHistory) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        id=h.id,
        new_status=h.new_status,
        previous_status=h.previous_status,
        status_id=h.status_id,
        changed_by=h.changed_by,
        note=h.note,
        changed_at=_iso(h.changed_at),
    )


def _security_to_entry(e: SecurityAuditLog) -> SecurityEntry:
    return SecurityEntry(
        id=e.id,
        event_type=e.event_type,
        severity=e.severity,
        description=e.event_description,
        vulnerability_type=e.vulnerability_type,
        event_data=_loads(e.event_data),
        created_at=_iso(e.created_at),
    )


@router.post("/sessions", response_model=SessionCreated, status_code=201)
async def create_payment_session(
    body: SessionCreateRequest,
    payments: PaymentService = Depends(get_payment_service),
):
    """Create a hosted payment session. The order id is generated here, never by the caller."""
    result = await payments.start_payment(PaymentRequest(
        amount=body.amount,
        currency=body.currency,
        customer=Customer(email=body.customer_email, phone=body.customer_phone, name=body.customer_name),
        description=body.description,
        return_url=body.return_url,
        service_id=body.service_id,
        user_id=body.user_id,
    ))
    return SessionCreated(
        order_id=result.order_id,
        session_id=result.session_id,
        payment_links=result.payment_links,
        redirect_url=result.redirect_url,
    )


@router.get("/sessions", response_model=list[SessionDetail])
async def list_payment_sessions(
    status: Optional[str] = Query(None, description="Filter by session status"),
    limit: int = Query(100, ge=1, le=500),
    ledger: AuditLedger = Depends(get_ledger),
):
    return [_session_to_detail(s) for s in await ledger.list_sessions(status=status, limit=limit)]


@router.get("/sessions/expired", response_model=list[SessionDetail])
async def list_expired_payment_sessions(ledger: AuditLedger = Depends(get_ledger)):
    """Sessions past their expiry that never reached a terminal status."""
    return [_session_to_detail(s) for s in await ledger.list_expired_sessions()]


@router.get("/{order_id}/status", response_model=PayerStatus)
async def get_payment_status(order_id: str, poller: StatusPoller = Depends(get_poller)):
    """Current outcome as a payer may see it: pending, success or failed."""
    check = await poller.check_status(order_id, source=ObservationSource.STATUS_CHECK)
    return PayerStatus(
        order_id=order_id,
        payment_state=payer_view(check.classification),
        is_final=check.is_terminal,
    )


@router.post("/{order_id}/poll", response_model=OperatorStatus)
async def poll_payment_status(
    order_id: str,
    body: PollRequest = PollRequest(),
    poller: StatusPoller = Depends(get_poller),
):
    result = await poller.poll(order_id, max_attempts=body.max_attempts)
    c = result.classification
    return OperatorStatus(
        order_id=order_id,
        status_id=c.status_id if c else None,
        status=c.name if c else None,
        message=c.message if c else None,
        recommended_action=c.recommended_action if c else None,
        is_terminal=result.is_terminal,
        attempts=result.attempts,
        max_attempts_reached=result.max_attempts_reached,
        requires_escalation=result.requires_escalation,
    )


@router.post("/{order_id}/refund", response_model=RefundResponse)
async def refund_payment(
    order_id: str,
    body: RefundRequest,
    payments: PaymentService = Depends(get_payment_service),
):
    result = await payments.refund(order_id, body.amount, body.note)
    return RefundResponse(
        order_id=result.order_id,
        refund_ref_no=result.refund_ref_no,
        refund_id=result.refund_id,
        success=result.success,
        status=result.status,
    )


@router.get("/{order_id}/trace", response_model=AuditTrailResponse)
async def get_payment_trace(order_id: str, ledger: AuditLedger = Depends(get_ledger)):
    """
    Full audit trail for an order, newest first.

    Operator-only: includes raw gateway payloads and internal status ids.
    """
    trail = await ledger.get_audit_trail(order_id)
    if trail.session is None and not trail.transactions and not trail.security_logs:
        raise HTTPException(status_code=404, detail=f"No payment found for order: {order_id}")
    return AuditTrailResponse(
        order_id=order_id,
        session=_session_to_detail(trail.session) if trail.session else None,
        transactions=[_transaction_to_entry(t) for t in trail.transactions],
        status_history=[_history_to_entry(h) for h in trail.status_history],
        security_logs=[_security_to_entry(e) for e in trail.security_logs],
    )
