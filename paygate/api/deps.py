"""Request-scoped access to the components built once at startup."""

from fastapi import Request

from paygate.audit.ledger import AuditLedger
from paygate.engine.callbacks import CallbackProcessor
from paygate.engine.payments import PaymentService
from paygate.engine.poller import StatusPoller


def get_ledger(request: Request) -> AuditLedger:
    return request.app.state.ledger


def get_poller(request: Request) -> StatusPoller:
    return request.app.state.poller


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payments


def get_callback_processor(request: Request) -> CallbackProcessor:
    return request.app.state.callbacks


def client_info(request: Request) -> tuple[str, str]:
    """Best-effort client ip and user agent for the audit trail."""
    forwarded = request.headers.get("x-forwarded-for")
    ip = (
        forwarded.split(",")[0].strip()
        if forwarded
        else request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")
    )
    return ip, request.headers.get("user-agent", "unknown")
