"""
Paygate: bank payment gateway integration API.

Creates hosted payment sessions, verifies signed callbacks, polls order
status to a terminal state, and keeps an append-only audit ledger of every
bank response.

Start the server:
    uvicorn paygate.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from paygate.api.callbacks import router as callbacks_router
from paygate.api.health import router as health_router
from paygate.api.payments import router as payments_router
from paygate.audit.ledger import AuditLedger
from paygate.config import Settings, get_settings
from paygate.database import create_session_factory, init_db
from paygate.engine.callbacks import CallbackProcessor
from paygate.engine.payments import PaymentService
from paygate.engine.poller import StatusPoller
from paygate.errors import ConfigurationError, GatewayError, PersistenceError, SignatureVerificationError
from paygate.providers import PaymentGateway, build_gateway

logger = logging.getLogger("paygate.main")


def create_app(settings: Optional[Settings] = None, gateway: Optional[PaymentGateway] = None) -> FastAPI:
    """Build the API. Missing gateway credentials abort startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or get_settings()
        logging.basicConfig(
            level=getattr(logging, resolved.log_level.upper(), logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        resolved.require_credentials()

        engine, session_factory = create_session_factory(resolved.database_url)
        await init_db(engine)

        gw = gateway or build_gateway(resolved)
        ledger = AuditLedger(session_factory, session_ttl_minutes=resolved.session_ttl_minutes)
        app.state.settings = resolved
        app.state.gateway = gw
        app.state.ledger = ledger
        app.state.poller = StatusPoller(
            gw,
            ledger,
            max_attempts=resolved.poll_max_attempts,
            interval_seconds=resolved.poll_interval_seconds,
            transient_retries=resolved.poll_transient_retries,
        )
        app.state.payments = PaymentService(gw, ledger)
        app.state.callbacks = CallbackProcessor(gw, ledger)
        logger.info("Paygate started env=%s gateway=%s", resolved.gateway_environment, gw.name)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title="Paygate",
        description=(
            "Bank payment gateway integration: hosted payment sessions, signed "
            "callback verification, status polling and an immutable audit ledger."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(health_router)
    app.include_router(payments_router, prefix="/api")
    app.include_router(callbacks_router, prefix="/api")

    @app.exception_handler(SignatureVerificationError)
    async def _signature_error(request: Request, exc: SignatureVerificationError):
        return JSONResponse(status_code=400, content={"status": "error", "message": "Invalid signature"})

    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError):
        # Gateway bodies and status codes stay server-side.
        logger.error("Gateway failure on %s: status=%s %s", request.url.path, exc.status_code, exc)
        return JSONResponse(
            status_code=502,
            content={"status": "error", "message": "Payment gateway unavailable"},
        )

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=500, content={"status": "error", "message": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _persistence_error(request: Request, exc: PersistenceError):
        logger.error("Ledger write failed on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"status": "error", "message": "Audit ledger unavailable"})

    return app


app = create_app()
