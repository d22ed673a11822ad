"""
SmartGateway HTTP client.

Endpoints (relative to the environment's base URL):
  POST /session            create a hosted payment session
  GET  /orders/{order_id}  order status (requires the ``version`` header)
  POST /refund             refund a charged order

Every request authenticates with ``Basic base64(api_key + ":")`` plus the
merchant and customer headers. requests is blocking, so each call runs in a
worker thread to keep the event loop free. requests.Session is not
thread-safe, so every worker thread gets its own session.
"""

import asyncio
import base64
import logging
import threading
from typing import Any, Optional

import requests

from paygate.config import Settings
from paygate.errors import GatewayError, GatewayNetworkError, PermanentError, RateLimitError
from paygate.providers.base import Customer, PaymentGateway, RefundResult, SessionResult, StatusResult
from paygate.providers.formatting import format_amount
from paygate.providers.ids import generate_customer_id, generate_refund_ref

logger = logging.getLogger("paygate.gateway")


def _error_for(response: requests.Response, action: str) -> GatewayError:
    status = response.status_code
    body = response.text
    message = f"Gateway {action} failed: {status} - {body[:200]}"
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        try:
            delay = float(retry_after) if retry_after else None
        except ValueError:
            delay = None
        return RateLimitError(message, body=body, retry_after=delay)
    if 400 <= status < 500:
        return PermanentError(message, status_code=status, body=body)
    return GatewayError(message, status_code=status, body=body, retriable=True)


class SmartGatewayClient(PaymentGateway):
    """Client for the bank's SmartGateway REST API (sandbox or production)."""

    def __init__(self, settings: Settings, http: Optional[requests.Session] = None):
        super().__init__(settings)
        # An injected session is used from every worker thread as-is.
        self._shared_http = http
        self._local = threading.local()
        self._auth = "Basic " + base64.b64encode(
            f"{settings.gateway_api_key}:".encode("utf-8")
        ).decode("ascii")

    @property
    def name(self) -> str:
        return "smartgateway"

    def _headers(self, customer_id: Optional[str] = None, versioned: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": self._auth,
            "Content-Type": "application/json",
            "x-merchantid": self.settings.gateway_merchant_id,
        }
        if customer_id:
            headers["x-customerid"] = customer_id
        if versioned:
            headers["version"] = self.settings.gateway_api_version
        return headers

    def _session(self) -> requests.Session:
        if self._shared_http is not None:
            return self._shared_http
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = requests.Session()
        return session

    def _send(self, method: str, path: str, action: str, headers: dict[str, str], body: Any = None) -> dict:
        url = f"{self.settings.base_url}{path}"
        try:
            response = self._session().request(
                method,
                url,
                headers=headers,
                json=body,
                timeout=self.settings.gateway_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error("Gateway %s transport error for %s: %s", action, url, e)
            raise GatewayNetworkError(f"Gateway {action} request failed: {e}") from e

        if not response.ok:
            logger.error(
                "Gateway %s error: status=%s url=%s merchant=%s auth=Basic [REDACTED] body=%s",
                action,
                response.status_code,
                url,
                self.settings.gateway_merchant_id,
                response.text[:500],
            )
            raise _error_for(response, action)

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(
                f"Gateway {action} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
                retriable=False,
            ) from e

    async def create_session(
        self,
        order_id: str,
        amount,
        currency: str,
        customer: Customer,
        description: str = "",
        return_url: Optional[str] = None,
    ) -> SessionResult:
        body = self.build_session_body(order_id, amount, currency, customer, description, return_url)
        logger.info(
            "Creating session order=%s amount=%s %s env=%s",
            order_id,
            body["amount"],
            currency,
            self.settings.gateway_environment,
        )
        data = await asyncio.to_thread(
            self._send, "POST", "/session", "session", self._headers(body["customer_id"]), body
        )
        result = SessionResult.from_payload(data, order_id, body["customer_id"])
        if not result.session_id and not result.redirect_url:
            logger.warning("Session response for %s has neither session id nor redirect url", order_id)
        return result

    async def get_status(self, order_id: str) -> StatusResult:
        headers = self._headers(generate_customer_id(order_id), versioned=True)
        data = await asyncio.to_thread(self._send, "GET", f"/orders/{order_id}", "order status", headers)
        result = StatusResult.from_payload(data, order_id)
        logger.info(
            "Order status order=%s status=%s status_id=%s txn=%s",
            result.order_id,
            result.status,
            result.status_id,
            result.transaction_id,
        )
        return result

    async def process_refund(self, order_id: str, amount, note: str = "") -> RefundResult:
        refund_ref_no = generate_refund_ref()
        body = {
            "order_id": order_id,
            "refund_amount": format_amount(amount),
            "refund_note": note,
            "refund_ref_no": refund_ref_no,
            "merchant_id": self.settings.gateway_merchant_id,
        }
        data = await asyncio.to_thread(
            self._send, "POST", "/refund", "refund", self._headers(generate_customer_id(order_id)), body
        )
        result = RefundResult.from_payload(data, order_id, refund_ref_no)
        logger.info("Refund order=%s ref=%s status=%s", order_id, refund_ref_no, result.status)
        return result
