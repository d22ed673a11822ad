"""
Deterministic mock gateway for the ``mock`` environment and tests.

Returns payloads in the same shape as the real order-status API, but never
touches the network. Status ids for an order come from an optional script:
each ``get_status`` call consumes the next id, and the last one repeats.
Orders without a script report CHARGED.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from paygate.config import Settings
from paygate.providers.base import Customer, PaymentGateway, RefundResult, SessionResult, StatusResult
from paygate.providers.formatting import format_amount
from paygate.providers.ids import generate_refund_ref
from paygate.status.codes import STATUS_TABLE, StatusCode


class MockGateway(PaymentGateway):
    """Network-free gateway that follows a scripted status sequence per order."""

    def __init__(
        self,
        settings: Settings,
        status_script: Optional[dict[str, list[int]]] = None,
        default_status_id: int = StatusCode.CHARGED,
        latency_ms: int = 0,
    ):
        super().__init__(settings)
        self._scripts = {k: list(v) for k, v in (status_script or {}).items()}
        self._default_status_id = int(default_status_id)
        self._latency_ms = latency_ms
        self._amounts: dict[str, str] = {}
        self.status_calls: dict[str, int] = {}

    @property
    def name(self) -> str:
        return "mock_gateway"

    def script(self, order_id: str, status_ids: list[int]) -> None:
        self._scripts[order_id] = list(status_ids)

    async def _latency(self) -> None:
        if self._latency_ms > 0:
            await asyncio.sleep(self._latency_ms / 1000)

    def _next_status_id(self, order_id: str) -> int:
        script = self._scripts.get(order_id)
        if not script:
            return self._default_status_id
        return script.pop(0) if len(script) > 1 else script[0]

    async def create_session(
        self,
        order_id: str,
        amount,
        currency: str,
        customer: Customer,
        description: str = "",
        return_url: Optional[str] = None,
    ) -> SessionResult:
        await self._latency()
        body = self.build_session_body(order_id, amount, currency, customer, description, return_url)
        self._amounts[order_id] = body["amount"]
        success = f"{self.settings.resolved_success_url}?order_id={order_id}&status=CHARGED"
        payload = {
            "id": f"mock_{order_id}",
            "session_id": f"mock_{order_id}",
            "order_id": order_id,
            "status": "NEW",
            "payment_links": {"web": success, "mobile": success},
            "redirect_url": success,
        }
        return SessionResult.from_payload(payload, order_id, body["customer_id"])

    async def get_status(self, order_id: str) -> StatusResult:
        await self._latency()
        self.status_calls[order_id] = self.status_calls.get(order_id, 0) + 1
        status_id = self._next_status_id(order_id)
        info = STATUS_TABLE.get(status_id)
        label = info.name if info else f"UNKNOWN_{status_id}"
        amount = self._amounts.get(order_id, "1000.00")
        now = datetime.now(timezone.utc).isoformat()
        txn_id = f"{self.settings.gateway_merchant_id}-{order_id}-1"
        payload = {
            "order_id": order_id,
            "merchant_id": self.settings.gateway_merchant_id,
            "status_id": status_id,
            "status": label,
            "amount": amount,
            "currency": "INR",
            "date_created": now,
            "txn_id": txn_id,
            "payment_method_type": "NB",
            "payment_method": "NB_HDFC",
            "auth_type": "THREE_DS",
            "refunded": False,
            "txn_detail": {
                "txn_id": txn_id,
                "order_id": order_id,
                "status": label,
                "txn_amount": amount,
                "gateway": "MOCK_GATEWAY",
                "created": now,
            },
            "payment_gateway_response": {
                "resp_code": "success" if status_id == StatusCode.CHARGED else "pending",
                "resp_message": "No Error",
                "txn_id": txn_id,
                "created": now,
            },
        }
        return StatusResult.from_payload(payload, order_id)

    async def process_refund(self, order_id: str, amount, note: str = "") -> RefundResult:
        await self._latency()
        refund_ref_no = generate_refund_ref()
        payload = {
            "refund_id": f"mock_refund_{refund_ref_no}",
            "order_id": order_id,
            "refund_amount": format_amount(amount),
            "refund_ref_no": refund_ref_no,
            "status": "success",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        return RefundResult.from_payload(payload, order_id, refund_ref_no)
