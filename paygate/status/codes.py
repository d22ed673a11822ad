"""
Bank-defined transaction status ids.

Maps every status id the gateway can report to its polling category, the
payer-facing outcome, a human message, and the recommended operator action.
The table is built once at import and is read-only; the classifier and any
reporting path query it instead of re-deriving the semantics.
"""

from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Mapping

from paygate.models.enums import PaymentOutcome, StatusCategory


class StatusCode(IntEnum):
    NEW = 10
    STARTED = 20
    CHARGED = 21
    JUSPAY_DECLINED = 22
    PENDING_VBV = 23
    AUTHORIZED = 25
    AUTHENTICATION_FAILED = 26
    AUTHORIZATION_FAILED = 27
    AUTHORIZING = 28
    VOIDED = 31
    VOID_INITIATED = 32
    VOID_FAILED = 33
    CAPTURE_FAILED = 34
    AUTO_REFUNDED = 36
    CAPTURE_INITIATED = 37


@dataclass(frozen=True)
class StatusInfo:
    code: StatusCode
    category: StatusCategory
    outcome: PaymentOutcome
    message: str
    action: str

    @property
    def name(self) -> str:
        return self.code.name


_KEEP_POLLING = (
    "Show pending screen to customers and keep polling order status "
    "till you get Charged or Failed."
)
_ALLOW_RETRY = (
    "Display transaction failure status to the user along with the failure "
    "reason. Allow user to retry payment."
)

_T, _P, _E = StatusCategory.TERMINAL, StatusCategory.POLLABLE, StatusCategory.INTEGRATION_ERROR
_OK, _PENDING, _FAILED = PaymentOutcome.SUCCESS, PaymentOutcome.PENDING, PaymentOutcome.FAILED

_ENTRIES = [
    StatusInfo(StatusCode.NEW, _P, _PENDING,
               "Newly created order. Transaction not triggered.",
               "Keep polling until the payer completes the transaction."),
    StatusInfo(StatusCode.STARTED, _E, _FAILED,
               "Transaction is pending. The gateway could not find a route to process the transaction.",
               "Integration error. Escalate to the gateway with the order id; do not ask the payer to retry."),
    StatusInfo(StatusCode.CHARGED, _T, _OK,
               "Successful transaction.",
               "Display order confirmation page to the user and fulfill the order."),
    StatusInfo(StatusCode.JUSPAY_DECLINED, _T, _FAILED,
               "Transaction failed due to failure of generation of ALT_ID in case of CARD payment mode.",
               "Display failure message and ask the user to retry."),
    StatusInfo(StatusCode.PENDING_VBV, _P, _PENDING,
               "Authentication is in progress.",
               _KEEP_POLLING),
    StatusInfo(StatusCode.AUTHORIZED, _P, _PENDING,
               "Pre-auth transaction. Used only for auth and capture flows.",
               "Call the capture API after order fulfilment."),
    StatusInfo(StatusCode.AUTHENTICATION_FAILED, _T, _FAILED,
               "User did not complete authentication.",
               _ALLOW_RETRY),
    StatusInfo(StatusCode.AUTHORIZATION_FAILED, _T, _FAILED,
               "User completed authentication, but the bank refused the transaction.",
               _ALLOW_RETRY),
    StatusInfo(StatusCode.AUTHORIZING, _P, _PENDING,
               "Transaction status is pending from bank.",
               _KEEP_POLLING),
    StatusInfo(StatusCode.VOIDED, _T, _FAILED,
               "Void transaction. Used only for auth and capture flows.",
               "Call the void API in order to unblock the amount."),
    StatusInfo(StatusCode.VOID_INITIATED, _P, _PENDING,
               "Void pending for the pre-authorized transaction.",
               "Keep polling until the void completes."),
    StatusInfo(StatusCode.VOID_FAILED, _T, _FAILED,
               "Void failed for the pre-authorized transaction.",
               "Review the pre-authorization with the gateway."),
    StatusInfo(StatusCode.CAPTURE_FAILED, _T, _FAILED,
               "Capture failed for the pre-authorized transaction.",
               "Review the pre-authorization with the gateway."),
    StatusInfo(StatusCode.AUTO_REFUNDED, _T, _FAILED,
               "Transaction is automatically refunded.",
               "Display the refund status to the user."),
    StatusInfo(StatusCode.CAPTURE_INITIATED, _P, _PENDING,
               "Capture pending for the pre-authorized transaction.",
               "Keep polling until the capture completes."),
]

STATUS_TABLE: Mapping[int, StatusInfo] = MappingProxyType({int(e.code): e for e in _ENTRIES})

TERMINAL_STATUSES = frozenset(c for c, e in STATUS_TABLE.items() if e.category is _T)
POLLING_STATUSES = frozenset(c for c, e in STATUS_TABLE.items() if e.category is _P)

# Display labels only; used when a response carries no numeric status id.
STATUS_NAME_ALIASES: Mapping[str, int] = MappingProxyType({
    **{code.name: int(code) for code in StatusCode},
    "FAILED": int(StatusCode.AUTHENTICATION_FAILED),
    "PENDING": int(StatusCode.PENDING_VBV),
    "DECLINED": int(StatusCode.JUSPAY_DECLINED),
    "CANCELLED": int(StatusCode.VOIDED),
    "REFUNDED": int(StatusCode.AUTO_REFUNDED),
    "SUCCESS": int(StatusCode.CHARGED),
})
