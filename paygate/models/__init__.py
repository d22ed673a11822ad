from paygate.models.enums import ObservationSource, PaymentOutcome, Severity, StatusCategory
from paygate.models.payment import (
    Base,
    PaymentSession,
    PaymentStatusHistory,
    SecurityAuditLog,
    TransactionDetail,
)

__all__ = [
    "Base",
    "PaymentSession",
    "TransactionDetail",
    "PaymentStatusHistory",
    "SecurityAuditLog",
    "ObservationSource",
    "PaymentOutcome",
    "Severity",
    "StatusCategory",
]
