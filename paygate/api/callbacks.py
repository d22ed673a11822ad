"""
Inbound gateway callbacks.

POST /payments/response   Return-URL redirect carrying form-encoded params.
GET  /payments/response   Same, with params in the query string.
POST /payments/webhook    Server-to-server JSON notification.

Every payload is signature-checked before its status is believed; a bad
signature answers 400 and leaves a security event in the ledger.
"""

from typing import Any, Mapping

from fastapi import APIRouter, Depends, HTTPException, Request

from paygate.api.deps import client_info, get_callback_processor
from paygate.api.payments import PayerStatus
from paygate.engine.callbacks import CallbackProcessor
from paygate.models.enums import ObservationSource
from paygate.status.classifier import payer_view

router = APIRouter(prefix="/payments", tags=["callbacks"])


async def _process(
    request: Request,
    params: Mapping[str, Any],
    source: ObservationSource,
    processor: CallbackProcessor,
) -> PayerStatus:
    if not params.get("order_id"):
        raise HTTPException(status_code=400, detail="Missing required parameter: order_id")
    ip, user_agent = client_info(request)
    outcome = await processor.handle(params, source=source, client_ip=ip, user_agent=user_agent)
    return PayerStatus(
        order_id=outcome.order_id,
        payment_state=payer_view(outcome.classification),
        is_final=outcome.classification.is_terminal,
    )


@router.post("/response", response_model=PayerStatus)
async def payment_response_form(
    request: Request,
    processor: CallbackProcessor = Depends(get_callback_processor),
):
    form = await request.form()
    params = {key: value for key, value in form.items() if isinstance(value, str)}
    return await _process(request, params, ObservationSource.CALLBACK, processor)


@router.get("/response", response_model=PayerStatus)
async def payment_response_query(
    request: Request,
    processor: CallbackProcessor = Depends(get_callback_processor),
):
    return await _process(request, dict(request.query_params), ObservationSource.CALLBACK, processor)


@router.post("/webhook", response_model=PayerStatus)
async def payment_webhook(
    request: Request,
    processor: CallbackProcessor = Depends(get_callback_processor),
):
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body must be JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")
    return await _process(request, body, ObservationSource.WEBHOOK, processor)
