"""End-to-end tests for the HTTP API over the mock gateway."""

from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient

from paygate.config import Settings
from paygate.errors import ConfigurationError, GatewayNetworkError
from paygate.main import create_app
from paygate.providers.mock_provider import MockGateway
from paygate.providers.smartgateway import SmartGatewayClient
from paygate.signing import compute_signature


@pytest.fixture
def api_settings(settings):
    return settings.model_copy(update={"poll_interval_seconds": 0.0, "poll_max_attempts": 3})


@pytest.fixture
def api_gateway(api_settings):
    return MockGateway(api_settings)


@pytest.fixture
def client(api_settings, api_gateway):
    with TestClient(create_app(api_settings, api_gateway)) as c:
        yield c


def _signed(settings, params):
    params = dict(params)
    params["signature"] = compute_signature(params, settings.gateway_response_key)
    params["signature_algorithm"] = "HMAC-SHA256"
    return params


def _create(client):
    resp = client.post("/api/payments/sessions", json={
        "amount": "1000.00",
        "customer_email": "payer@example.com",
        "customer_phone": "9876543210",
        "customer_name": "Asha Rao",
    })
    assert resp.status_code == 201
    return resp.json()


class TestStartup:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "environment": "mock", "gateway": "mock_gateway"}

    def test_missing_credentials_abort_startup(self, tmp_path):
        settings = Settings(
            gateway_api_key="",
            gateway_merchant_id="",
            gateway_response_key="",
            gateway_environment="mock",
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        )
        with pytest.raises(ConfigurationError):
            with TestClient(create_app(settings)):
                pass


class TestSessions:
    def test_create_session(self, client):
        body = _create(client)
        assert body["order_id"].startswith("ORD")
        assert body["session_id"] == f"mock_{body['order_id']}"
        assert body["payment_links"]["web"]

    def test_invalid_phone_rejected(self, client):
        resp = client.post("/api/payments/sessions", json={
            "amount": "10", "customer_email": "payer@example.com", "customer_phone": "123",
        })
        assert resp.status_code == 422

    def test_non_positive_amount_rejected(self, client):
        resp = client.post("/api/payments/sessions", json={"amount": "0", "customer_email": "payer@example.com"})
        assert resp.status_code == 422

    def test_list_sessions(self, client):
        first = _create(client)
        second = _create(client)
        resp = client.get("/api/payments/sessions")
        assert [s["order_id"] for s in resp.json()] == [second["order_id"], first["order_id"]]

    def test_no_expired_sessions(self, client):
        _create(client)
        assert client.get("/api/payments/sessions/expired").json() == []


class TestStatus:
    def test_payer_sees_success(self, client):
        order_id = _create(client)["order_id"]
        resp = client.get(f"/api/payments/{order_id}/status")
        assert resp.json() == {"order_id": order_id, "payment_state": "success", "is_final": True}

    def test_payer_sees_pending(self, client, api_gateway):
        order_id = _create(client)["order_id"]
        api_gateway.script(order_id, [23])
        body = client.get(f"/api/payments/{order_id}/status").json()
        assert body["payment_state"] == "pending"
        assert not body["is_final"]

    def test_operator_poll(self, client, api_gateway):
        order_id = _create(client)["order_id"]
        api_gateway.script(order_id, [10, 28, 21])
        body = client.post(f"/api/payments/{order_id}/poll", json={}).json()

        assert body["status_id"] == 21
        assert body["status"] == "CHARGED"
        assert body["attempts"] == 3
        assert body["is_terminal"]
        assert not body["max_attempts_reached"]

    def test_poll_budget(self, client, api_gateway):
        order_id = _create(client)["order_id"]
        api_gateway.script(order_id, [28])
        body = client.post(f"/api/payments/{order_id}/poll", json={"max_attempts": 2}).json()
        assert body["attempts"] == 2
        assert body["max_attempts_reached"]

    def test_gateway_failure_is_502(self, api_settings, tmp_path):
        class DownGateway(MockGateway):
            async def get_status(self, order_id):
                raise GatewayNetworkError("connection refused")

        settings = api_settings.model_copy(update={"poll_transient_retries": 0})
        with TestClient(create_app(settings, DownGateway(settings))) as c:
            resp = c.get("/api/payments/ORD1/status")
        assert resp.status_code == 502
        assert resp.json()["status"] == "error"

    def test_gateway_body_never_reaches_payer(self, api_settings):
        sandbox = api_settings.model_copy(update={"gateway_environment": "sandbox"})
        response = MagicMock(spec=requests.Response)
        response.status_code = 404
        response.ok = False
        response.headers = {}
        response.text = '{"status_id":26,"internal_error":"BANK_RAW_PAYLOAD"}'
        http = MagicMock(spec=requests.Session)
        http.request.return_value = response

        with TestClient(create_app(sandbox, SmartGatewayClient(sandbox, http=http))) as c:
            resp = c.get("/api/payments/ORD1/status")

        assert resp.status_code == 502
        assert "BANK_RAW_PAYLOAD" not in resp.text
        assert "404" not in resp.text
        assert resp.json() == {"status": "error", "message": "Payment gateway unavailable"}


class TestCallbacks:
    def test_form_callback(self, client, api_settings):
        order_id = _create(client)["order_id"]
        params = _signed(api_settings, {"order_id": order_id, "status": "CHARGED", "status_id": "21"})
        resp = client.post("/api/payments/response", data=params)
        assert resp.status_code == 200
        assert resp.json() == {"order_id": order_id, "payment_state": "success", "is_final": True}

    def test_query_callback(self, client, api_settings):
        order_id = _create(client)["order_id"]
        params = _signed(api_settings, {"order_id": order_id, "status": "AUTHENTICATION_FAILED", "status_id": "26"})
        resp = client.get("/api/payments/response", params=params)
        assert resp.json()["payment_state"] == "failed"

    def test_webhook(self, client, api_settings):
        order_id = _create(client)["order_id"]
        params = _signed(api_settings, {"order_id": order_id, "status": "PENDING_VBV", "status_id": "23"})
        resp = client.post("/api/payments/webhook", json=params)
        assert resp.json()["payment_state"] == "pending"

    def test_tampered_callback_rejected_and_audited(self, client, api_settings):
        order_id = _create(client)["order_id"]
        params = _signed(api_settings, {"order_id": order_id, "status": "AUTHENTICATION_FAILED", "status_id": "26"})
        params["status"], params["status_id"] = "CHARGED", "21"

        resp = client.post("/api/payments/response", data=params)
        assert resp.status_code == 400
        assert resp.json() == {"status": "error", "message": "Invalid signature"}

        trace = client.get(f"/api/payments/{order_id}/trace").json()
        assert [(e["severity"], e["vulnerability_type"]) for e in trace["security_logs"]] == [
            ("high", "signature_mismatch"),
        ]
        assert trace["session"]["session_status"] == "NEW"
        assert trace["status_history"] == []

    def test_missing_order_id(self, client):
        resp = client.post("/api/payments/webhook", json={"status": "CHARGED"})
        assert resp.status_code == 400


class TestTraceAndRefund:
    def test_trace(self, client):
        order_id = _create(client)["order_id"]
        client.get(f"/api/payments/{order_id}/status")

        trace = client.get(f"/api/payments/{order_id}/trace").json()
        assert trace["session"]["session_status"] == "CHARGED"
        assert trace["session"]["last_status_id"] == 21
        assert trace["transactions"][0]["source"] == "status_check"
        assert trace["transactions"][0]["gateway_response"]["status_id"] == 21
        assert [h["new_status"] for h in trace["status_history"]] == ["CHARGED"]

    def test_trace_unknown_order(self, client):
        assert client.get("/api/payments/NOPE/trace").status_code == 404

    def test_refund(self, client):
        order_id = _create(client)["order_id"]
        resp = client.post(f"/api/payments/{order_id}/refund", json={"amount": "100", "note": "partial"})
        body = resp.json()
        assert resp.status_code == 200
        assert body["success"]
        assert body["refund_ref_no"].startswith("REF")
