"""
Payment session lifecycle: the entry point external collaborators call.

  1. Generate the order id (never caller-supplied)
  2. Record the session row in the ledger
  3. Create the hosted session with the gateway
  4. Cache the gateway's session payload on the row (best-effort)

The gateway never writes to storage; this service hands everything it gets
back to the ledger.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from paygate.audit.ledger import AuditLedger
from paygate.errors import GatewayError
from paygate.models.enums import ObservationSource
from paygate.providers.base import Customer, PaymentGateway, RefundResult, SessionResult
from paygate.providers.formatting import to_decimal
from paygate.providers.ids import generate_customer_id

logger = logging.getLogger("paygate.payments")


@dataclass
class PaymentRequest:
    amount: object
    customer: Customer
    currency: str = "INR"
    description: str = ""
    return_url: Optional[str] = None
    service_id: Optional[str] = None
    user_id: Optional[str] = None


class PaymentService:
    def __init__(self, gateway: PaymentGateway, ledger: AuditLedger):
        self._gateway = gateway
        self._ledger = ledger

    async def start_payment(self, request: PaymentRequest) -> SessionResult:
        """
        Create and record a payment session for a new order.

        Raises:
            GatewayError: Session creation was rejected; the row is kept
                with status ``creation_failed``.
            PersistenceError: The session row could not be written.
        """
        order_id = self._gateway.new_order_id()
        customer = request.customer
        if not customer.customer_id:
            customer.customer_id = generate_customer_id(customer.email or order_id)
        first_name, last_name = customer.names()
        amount = to_decimal(request.amount)

        await self._ledger.create_session(
            order_id=order_id,
            customer_id=customer.customer_id,
            customer_email=customer.email,
            customer_phone=customer.phone or None,
            first_name=first_name or None,
            last_name=last_name or None,
            amount=amount,
            currency=request.currency,
            description=request.description or None,
            service_id=request.service_id,
            user_id=request.user_id,
            environment=self._gateway.settings.gateway_environment,
        )

        try:
            result = await self._gateway.create_session(
                order_id,
                amount,
                request.currency,
                customer,
                request.description,
                request.return_url,
            )
        except GatewayError as e:
            logger.error("Session creation failed for %s: %s", order_id, e)
            await self._ledger.update_session_response(
                order_id,
                {"error": str(e), "status_code": e.status_code, "body": e.body},
                status="creation_failed",
            )
            raise

        await self._ledger.update_session_response(
            order_id,
            result.raw,
            status=result.status or "session_created",
            gateway_session_id=result.session_id,
            payment_links=result.payment_links,
            redirect_url=result.redirect_url,
        )
        logger.info("Payment session ready order=%s session=%s", order_id, result.session_id)
        return result

    async def refund(self, order_id: str, amount, note: str = "") -> RefundResult:
        """Submit a refund and record the gateway's answer as an observation."""
        result = await self._gateway.process_refund(order_id, amount, note)
        await self._ledger.record_transaction(
            order_id,
            source=ObservationSource.REFUND,
            status=f"REFUND_{result.status.upper()}",
            transaction_id=result.refund_id or result.refund_ref_no,
            gateway_response=result.raw,
            signature_verified=True,
            signature_algorithm="REFUND_API",
            note=note or None,
            affects_status=False,
        )
        return result
