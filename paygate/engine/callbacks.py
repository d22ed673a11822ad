"""
Inbound callback handling (return-URL redirects and webhooks).

A callback's embedded status is untrusted until its signature verifies:

  - signature missing or wrong: one high-severity ``signature_mismatch``
    security event, the raw observation stored as unverified (no status
    effect), then SignatureVerificationError
  - verified: classified and appended; a delivery whose signature was
    already stored is still recorded and flagged as a duplicate
  - verified integration error (STARTED): also a high-severity
    ``gateway_integration_error`` event, as the poller does
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from paygate.audit.ledger import AuditLedger
from paygate.errors import SignatureVerificationError
from paygate.models.enums import ObservationSource, Severity
from paygate.providers.base import PaymentGateway
from paygate.status.classifier import StatusClassification, classify, resolve_status_id

logger = logging.getLogger("paygate.callbacks")


@dataclass
class CallbackOutcome:
    order_id: str
    classification: StatusClassification
    transaction_id: Optional[str] = None
    duplicate: bool = False


class CallbackProcessor:
    def __init__(self, gateway: PaymentGateway, ledger: AuditLedger):
        self._gateway = gateway
        self._ledger = ledger

    async def handle(
        self,
        params: Mapping[str, Any],
        source: ObservationSource = ObservationSource.CALLBACK,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> CallbackOutcome:
        """
        Verify, classify and record one inbound callback.

        Raises:
            SignatureVerificationError: The signature is missing or invalid.
        """
        params = dict(params)
        order_id = str(params.get("order_id") or "")
        signature = params.get("signature")
        label = params.get("status") or params.get("order_status")
        status_id = resolve_status_id(params.get("status_id"), label)
        transaction_id = params.get("txn_id") or params.get("transaction_id")

        if not self._gateway.verify_signature(params):
            await self._reject(order_id, params, source, label, status_id, transaction_id, client_ip, user_agent)
            raise SignatureVerificationError(order_id or None)

        duplicate = bool(order_id) and await self._ledger.signature_seen(order_id, str(signature))
        if duplicate:
            logger.warning("Duplicate callback for order %s; recording anyway", order_id)
            await self._ledger.log_security_event(
                "callback_replay_detected",
                Severity.LOW,
                f"Callback with an already recorded signature for order {order_id}",
                order_id=order_id,
                vulnerability_type="replay",
                event_data={"source": source.value, "ip_address": client_ip, "status": label},
            )

        classification = classify(status_id)
        await self._ledger.record_transaction(
            order_id,
            source=source,
            status=classification.name if classification.is_known else label,
            status_id=status_id,
            transaction_id=transaction_id,
            form_data=params,
            signature=str(signature),
            signature_algorithm=params.get("signature_algorithm"),
            signature_verified=True,
            ip_address=client_ip,
            user_agent=user_agent,
            note="duplicate delivery" if duplicate else classification.message,
        )

        if classification.requires_escalation:
            logger.error("Integration error reported by callback for order %s: %s", order_id, classification.message)
            await self._ledger.log_security_event(
                "gateway_integration_error",
                Severity.HIGH,
                f"Gateway could not route order {order_id}; operator escalation required",
                order_id=order_id,
                event_data={"source": source.value, "status_id": status_id, "status": label},
            )

        logger.info(
            "Callback order=%s source=%s status_id=%s terminal=%s duplicate=%s",
            order_id,
            source.value,
            status_id,
            classification.is_terminal,
            duplicate,
        )
        return CallbackOutcome(
            order_id=order_id,
            classification=classification,
            transaction_id=transaction_id,
            duplicate=duplicate,
        )

    async def _reject(
        self,
        order_id: str,
        params: dict[str, Any],
        source: ObservationSource,
        label: Optional[str],
        status_id: Optional[int],
        transaction_id: Optional[str],
        client_ip: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        logger.error("Invalid callback signature for order %s from %s", order_id or "-", client_ip or "-")
        await self._ledger.log_security_event(
            "signature_verification_failure",
            Severity.HIGH,
            f"Callback signature verification failed for order {order_id or 'unknown'}",
            order_id=order_id or None,
            vulnerability_type="signature_mismatch",
            event_data={
                "source": source.value,
                "received_signature": params.get("signature"),
                "claimed_status": label,
                "ip_address": client_ip,
                "user_agent": user_agent,
            },
        )
        await self._ledger.record_transaction(
            order_id,
            source=source,
            status=label,
            status_id=status_id,
            transaction_id=transaction_id,
            form_data=params,
            signature=params.get("signature"),
            signature_algorithm=params.get("signature_algorithm"),
            signature_verified=False,
            ip_address=client_ip,
            user_agent=user_agent,
            note="signature verification failed",
        )
