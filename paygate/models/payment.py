"""SQLAlchemy models for the payment audit ledger."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    event,
)
from sqlalchemy.orm import DeclarativeBase

from paygate.errors import ImmutableRecordError


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentSession(Base):
    """
    One row per attempted payment.

    The only mutable ledger row: the session status and last bank payload are
    refreshed as observations arrive. Rows are never deleted; expires_at
    drives cleanup reporting.
    """

    __tablename__ = "payment_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False, unique=True, index=True)
    gateway_session_id = Column(String(100), nullable=True)

    customer_id = Column(String(100), nullable=False)
    customer_email = Column(String(200), nullable=False)
    customer_phone = Column(String(30), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), default="INR")
    description = Column(Text, nullable=True)

    payment_link_web = Column(Text, nullable=True)
    payment_link_mobile = Column(Text, nullable=True)
    redirect_url = Column(Text, nullable=True)
    session_response = Column(Text, nullable=True)  # JSON: last raw bank payload
    session_status = Column(String(50), nullable=False, default="created")
    last_status_id = Column(Integer, nullable=True)

    service_id = Column(String(100), nullable=True)
    user_id = Column(String(100), nullable=True)
    environment = Column(String(20), nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class TransactionDetail(Base):
    """
    One immutable row per observed bank response for an order.

    Webhooks, return-URL callbacks and polls each append a row; nothing here
    is ever updated, which keeps the ledger replay-safe.
    """

    __tablename__ = "transaction_details"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False, index=True)
    payment_session_id = Column(Integer, ForeignKey("payment_sessions.id"), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    status = Column(String(50), nullable=True)
    status_id = Column(Integer, nullable=True)
    source = Column(String(20), nullable=False)

    gateway_response_raw = Column(Text, nullable=True)  # JSON
    form_data_received = Column(Text, nullable=True)  # JSON
    signature = Column(Text, nullable=True)
    signature_algorithm = Column(String(50), nullable=True)
    signature_verified = Column(Boolean, nullable=False, default=False)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class PaymentStatusHistory(Base):
    """Append-only status changes, derived from verified transaction writes."""

    __tablename__ = "payment_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False, index=True)
    new_status = Column(String(50), nullable=False)
    previous_status = Column(String(50), nullable=True)
    status_id = Column(Integer, nullable=True)
    changed_by = Column(String(50), nullable=False)
    note = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class SecurityAuditLog(Base):
    """Append-only record of suspicious or notable events."""

    __tablename__ = "security_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(100), nullable=False)
    severity = Column(String(20), nullable=False)
    event_description = Column(Text, nullable=False)
    order_id = Column(String(64), nullable=True, index=True)
    vulnerability_type = Column(String(100), nullable=True)
    event_data = Column(Text, nullable=True)  # JSON
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


def _reject_mutation(mapper, connection, target):
    raise ImmutableRecordError(
        f"{target.__tablename__} rows are append-only (id={target.id})"
    )


for _model in (TransactionDetail, PaymentStatusHistory, SecurityAuditLog):
    event.listen(_model, "before_update", _reject_mutation)
    event.listen(_model, "before_delete", _reject_mutation)
