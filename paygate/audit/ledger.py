"""
Audit ledger: the single writer for all persisted payment state.

Four tables, one owner:
  - payment_sessions        one mutable row per order (status mirror, last payload)
  - transaction_details     append-only, one row per observed bank response
  - payment_status_history  append-only, derived from verified observations
  - security_audit_log      append-only, suspicious or notable events

Every write commits before returning, so a crash mid-poll still leaves the
last observation durable. Transaction details, status history and security
events are canonical and propagate failures as PersistenceError; refreshing
the cached session snapshot is best-effort and only logs.

Observations are never assumed to improve monotonically: a stale webhook
arriving after a fresher poll is simply another row.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import exists, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paygate.errors import PersistenceError
from paygate.models.enums import ObservationSource, Severity
from paygate.models.payment import (
    PaymentSession,
    PaymentStatusHistory,
    SecurityAuditLog,
    TransactionDetail,
)
from paygate.status.codes import TERMINAL_STATUSES

logger = logging.getLogger("paygate.ledger")


def _dump(data: Any) -> Optional[str]:
    if data is None:
        return None
    return json.dumps(data, default=str)


def _audit(order_id: Optional[str], action: str, details: Optional[dict[str, Any]] = None) -> None:
    logger.info(
        "AUDIT | order=%s action=%s | %s",
        order_id or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )


@dataclass
class AuditTrail:
    """Everything the ledger knows about one order, newest first."""

    order_id: str
    session: Optional[PaymentSession]
    transactions: list[TransactionDetail] = field(default_factory=list)
    status_history: list[PaymentStatusHistory] = field(default_factory=list)
    security_logs: list[SecurityAuditLog] = field(default_factory=list)


class AuditLedger:
    """Typed read/write access to the payment ledger tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], session_ttl_minutes: int = 30):
        self._session_factory = session_factory
        self._session_ttl = timedelta(minutes=session_ttl_minutes)

    # ── Payment sessions ────────────────────────────────────────────────

    async def create_session(
        self,
        order_id: str,
        customer_id: str,
        customer_email: str,
        amount=None,
        currency: str = "INR",
        description: Optional[str] = None,
        customer_phone: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        service_id: Optional[str] = None,
        user_id: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> PaymentSession:
        """Insert the session row for a new payment attempt."""
        now = datetime.now(timezone.utc)
        row = PaymentSession(
            order_id=order_id,
            customer_id=customer_id,
            customer_email=customer_email,
            customer_phone=customer_phone,
            first_name=first_name,
            last_name=last_name,
            amount=amount,
            currency=currency,
            description=description,
            service_id=service_id,
            user_id=user_id,
            environment=environment,
            session_status="created",
            expires_at=now + self._session_ttl,
        )
        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise PersistenceError(f"Payment session already exists for order {order_id}") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Failed to create payment session for {order_id}: {e}") from e

        _audit(order_id, "session_created", {"amount": amount, "currency": currency, "customer_id": customer_id})
        return row

    async def update_session_response(
        self,
        order_id: str,
        payload: Optional[dict[str, Any]],
        status: Optional[str] = None,
        gateway_session_id: Optional[str] = None,
        payment_links: Optional[dict[str, str]] = None,
        redirect_url: Optional[str] = None,
    ) -> bool:
        """
        Refresh the cached bank payload on the session row.

        Best-effort: a failure is logged and reported as False, never raised.
        """
        try:
            async with self._session_factory() as session:
                row = await self._load_session(session, order_id)
                if row is None:
                    logger.warning("No payment session to update for order %s", order_id)
                    return False
                row.session_response = _dump(payload)
                row.session_status = status or (payload or {}).get("status") or "updated"
                if gateway_session_id:
                    row.gateway_session_id = gateway_session_id
                if payment_links:
                    row.payment_link_web = payment_links.get("web")
                    row.payment_link_mobile = payment_links.get("mobile")
                if redirect_url:
                    row.redirect_url = redirect_url
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning("Session snapshot update failed for %s, continuing: %s", order_id, e)
            return False

        _audit(order_id, "session_updated", {"status": status, "gateway_session_id": gateway_session_id})
        return True

    # ── Transaction observations ────────────────────────────────────────

    async def record_transaction(
        self,
        order_id: str,
        source: ObservationSource,
        status: Optional[str] = None,
        status_id: Optional[int] = None,
        transaction_id: Optional[str] = None,
        gateway_response: Optional[dict[str, Any]] = None,
        form_data: Optional[dict[str, Any]] = None,
        signature: Optional[str] = None,
        signature_algorithm: Optional[str] = None,
        signature_verified: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        note: Optional[str] = None,
        affects_status: bool = True,
    ) -> TransactionDetail:
        """
        Append one observed bank response.

        Only signature-verified observations (server-to-server responses count
        as verified) can append status history or refresh the session mirror.
        The detail row, history row and mirror refresh share one DB
        transaction.

        Raises:
            PersistenceError: The observation could not be stored.
        """
        source = ObservationSource(source)
        async with self._session_factory() as session:
            try:
                payment_session = await self._load_session(session, order_id)
                detail = TransactionDetail(
                    order_id=order_id,
                    payment_session_id=payment_session.id if payment_session else None,
                    transaction_id=transaction_id,
                    status=status,
                    status_id=status_id,
                    source=source.value,
                    gateway_response_raw=_dump(gateway_response),
                    form_data_received=_dump(form_data),
                    signature=signature,
                    signature_algorithm=signature_algorithm,
                    signature_verified=signature_verified,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
                session.add(detail)

                history = None
                if signature_verified and affects_status and status:
                    history = await self._append_history(session, order_id, status, status_id, source, note)
                    if payment_session is not None:
                        self._refresh_mirror(payment_session, status, status_id, gateway_response or form_data)

                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Failed to record transaction for %s: %s", order_id, e)
                raise PersistenceError(f"Failed to record transaction for {order_id}: {e}") from e

        _audit(order_id, "transaction_recorded", {
            "source": source.value,
            "status": status,
            "status_id": status_id,
            "verified": signature_verified,
            "status_changed": history is not None,
        })
        return detail

    async def _append_history(
        self,
        session: AsyncSession,
        order_id: str,
        status: str,
        status_id: Optional[int],
        source: ObservationSource,
        note: Optional[str],
    ) -> Optional[PaymentStatusHistory]:
        previous = await session.scalar(
            select(PaymentStatusHistory.new_status)
            .where(PaymentStatusHistory.order_id == order_id)
            .order_by(PaymentStatusHistory.changed_at.desc(), PaymentStatusHistory.id.desc())
            .limit(1)
        )
        if previous == status:
            return None
        entry = PaymentStatusHistory(
            order_id=order_id,
            new_status=status,
            previous_status=previous,
            status_id=status_id,
            changed_by=source.value,
            note=note,
        )
        session.add(entry)
        return entry

    @staticmethod
    def _refresh_mirror(
        row: PaymentSession,
        status: str,
        status_id: Optional[int],
        payload: Optional[dict[str, Any]],
    ) -> None:
        # A late non-terminal observation must not mask a terminal mirror.
        if row.last_status_id in TERMINAL_STATUSES and status_id not in TERMINAL_STATUSES:
            return
        row.session_status = status
        row.last_status_id = status_id
        if payload is not None:
            row.session_response = _dump(payload)

    async def signature_seen(self, order_id: str, signature: str) -> bool:
        """True if a verified observation with this signature is already stored."""
        async with self._session_factory() as session:
            return bool(await session.scalar(
                select(exists().where(
                    TransactionDetail.order_id == order_id,
                    TransactionDetail.signature == signature,
                    TransactionDetail.signature_verified.is_(True),
                ))
            ))

    # ── Security events ─────────────────────────────────────────────────

    async def log_security_event(
        self,
        event_type: str,
        severity: Severity,
        description: str,
        order_id: Optional[str] = None,
        vulnerability_type: Optional[str] = None,
        event_data: Optional[dict[str, Any]] = None,
    ) -> SecurityAuditLog:
        """
        Append a security-relevant event.

        Raises:
            PersistenceError: The event could not be stored.
        """
        severity = Severity(severity)
        entry = SecurityAuditLog(
            event_type=event_type,
            severity=severity.value,
            event_description=description,
            order_id=order_id,
            vulnerability_type=vulnerability_type,
            event_data=_dump(event_data),
        )
        async with self._session_factory() as session:
            session.add(entry)
            try:
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Failed to log security event {event_type}: {e}") from e

        log = logger.warning if severity in (Severity.HIGH, Severity.CRITICAL) else logger.info
        log("SECURITY | order=%s type=%s severity=%s | %s", order_id or "-", event_type, severity.value, description)
        return entry

    # ── Reads ───────────────────────────────────────────────────────────

    @staticmethod
    async def _load_session(session: AsyncSession, order_id: str) -> Optional[PaymentSession]:
        return await session.scalar(select(PaymentSession).where(PaymentSession.order_id == order_id))

    async def get_payment_session(self, order_id: str) -> Optional[PaymentSession]:
        async with self._session_factory() as session:
            return await self._load_session(session, order_id)

    async def get_transaction_details(self, order_id: str) -> list[TransactionDetail]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(TransactionDetail)
                .where(TransactionDetail.order_id == order_id)
                .order_by(TransactionDetail.created_at.desc(), TransactionDetail.id.desc())
            )
            return list(result.all())

    async def get_status_history(self, order_id: str) -> list[PaymentStatusHistory]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(PaymentStatusHistory)
                .where(PaymentStatusHistory.order_id == order_id)
                .order_by(PaymentStatusHistory.changed_at.desc(), PaymentStatusHistory.id.desc())
            )
            return list(result.all())

    async def get_security_logs(self, order_id: str) -> list[SecurityAuditLog]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(SecurityAuditLog)
                .where(SecurityAuditLog.order_id == order_id)
                .order_by(SecurityAuditLog.created_at.desc(), SecurityAuditLog.id.desc())
            )
            return list(result.all())

    async def get_audit_trail(self, order_id: str) -> AuditTrail:
        """Session, observations, status changes and security events for one order."""
        session, transactions, history, security_logs = await asyncio.gather(
            self.get_payment_session(order_id),
            self.get_transaction_details(order_id),
            self.get_status_history(order_id),
            self.get_security_logs(order_id),
        )
        return AuditTrail(
            order_id=order_id,
            session=session,
            transactions=transactions,
            status_history=history,
            security_logs=security_logs,
        )

    async def list_sessions(self, status: Optional[str] = None, limit: int = 100) -> list[PaymentSession]:
        stmt = select(PaymentSession)
        if status:
            stmt = stmt.where(PaymentSession.session_status == status)
        stmt = stmt.order_by(PaymentSession.created_at.desc(), PaymentSession.id.desc()).limit(limit)
        async with self._session_factory() as session:
            return list((await session.scalars(stmt)).all())

    async def list_expired_sessions(self, as_of: Optional[datetime] = None) -> list[PaymentSession]:
        """Sessions past their expiry that never reached a terminal status."""
        as_of = as_of or datetime.now(timezone.utc)
        stmt = (
            select(PaymentSession)
            .where(PaymentSession.expires_at < as_of)
            .where(or_(
                PaymentSession.last_status_id.is_(None),
                PaymentSession.last_status_id.not_in(sorted(TERMINAL_STATUSES)),
            ))
            .order_by(PaymentSession.expires_at.asc())
        )
        async with self._session_factory() as session:
            return list((await session.scalars(stmt)).all())
