"""
Status classifier: a pure function over the status table.

Unknown ids never raise. They classify as a non-terminal, pollable "new"
state and log a warning, because a genuinely new terminal code would
otherwise be polled until the attempt budget runs out.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from paygate.models.enums import PaymentOutcome, StatusCategory
from paygate.status.codes import STATUS_NAME_ALIASES, STATUS_TABLE, StatusCode

logger = logging.getLogger("paygate.status")

UNKNOWN_MESSAGE = "Unknown status"
UNKNOWN_ACTION = "Keep polling; contact gateway support if the status does not change."


@dataclass(frozen=True)
class StatusClassification:
    status_id: Optional[int]
    name: str
    category: StatusCategory
    outcome: PaymentOutcome
    is_terminal: bool
    should_poll: bool
    message: str
    recommended_action: str
    is_known: bool = True

    @property
    def requires_escalation(self) -> bool:
        return self.category is StatusCategory.INTEGRATION_ERROR


def classify(status_id: Optional[int]) -> StatusClassification:
    """Classify a bank status id. The numeric id is the only branching key."""
    info = STATUS_TABLE.get(status_id) if status_id is not None else None

    if info is None:
        logger.warning(
            "Unrecognized gateway status id %s; treating as non-terminal", status_id
        )
        return StatusClassification(
            status_id=status_id,
            name=StatusCode.NEW.name if status_id is None else f"UNKNOWN_{status_id}",
            category=StatusCategory.POLLABLE,
            outcome=PaymentOutcome.PENDING,
            is_terminal=False,
            should_poll=True,
            message=UNKNOWN_MESSAGE,
            recommended_action=UNKNOWN_ACTION,
            is_known=False,
        )

    return StatusClassification(
        status_id=int(info.code),
        name=info.name,
        category=info.category,
        outcome=info.outcome,
        # Integration errors stop polling; they need an operator, not a retry.
        is_terminal=info.category is not StatusCategory.POLLABLE,
        should_poll=info.category is StatusCategory.POLLABLE,
        message=info.message,
        recommended_action=info.action,
    )


def status_id_from_name(name: Optional[str]) -> Optional[int]:
    """
    Fallback for responses that omit ``status_id``.

    Labels vary in casing and spelling, so this is only consulted when no
    numeric id is present.
    """
    if not name:
        return None
    return STATUS_NAME_ALIASES.get(name.strip().upper().replace(" ", "_"))


def resolve_status_id(status_id, status_name: Optional[str]) -> Optional[int]:
    """Prefer the numeric id; fall back to the label only when it is absent."""
    if status_id not in (None, ""):
        try:
            return int(status_id)
        except (TypeError, ValueError):
            logger.warning("Non-numeric status id %r from gateway", status_id)
    resolved = status_id_from_name(status_name)
    if resolved is not None:
        logger.warning("Gateway response lacks status_id; derived %s from label %r", resolved, status_name)
    return resolved


def payer_view(classification: StatusClassification) -> str:
    """What a payer is allowed to see: pending, success or failed."""
    if not classification.is_terminal:
        return PaymentOutcome.PENDING.value
    return classification.outcome.value
