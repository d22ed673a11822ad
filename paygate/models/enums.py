"""Enumerations for the payment gateway domain model."""

from enum import Enum


class StatusCategory(str, Enum):
    """How a bank status id drives polling."""

    TERMINAL = "terminal"
    POLLABLE = "pollable"
    INTEGRATION_ERROR = "integration_error"


class PaymentOutcome(str, Enum):
    """The only states ever shown to a payer."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ObservationSource(str, Enum):
    """Where a transaction observation came from."""

    CALLBACK = "callback"
    WEBHOOK = "webhook"
    POLL = "poll"
    STATUS_CHECK = "status_check"
    REFUND = "refund"


class Severity(str, Enum):
    """Security audit log severities."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
