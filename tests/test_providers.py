"""Tests for identifier generation, body formatting and the mock gateway."""

import asyncio
import re
from decimal import Decimal

import pytest

from paygate.config import Settings
from paygate.errors import ConfigurationError
from paygate.providers import MockGateway, SmartGatewayClient, build_gateway
from paygate.providers.base import Customer
from paygate.providers.formatting import (
    format_amount,
    format_phone_number,
    parse_customer_name,
    to_decimal,
    validate_phone_number,
)
from paygate.providers.ids import generate_customer_id, generate_order_id, generate_refund_ref

ORDER_ID_RE = re.compile(r"^ORD\d{13}\d{3}[0-9a-f]{8}$")


class TestIdentifiers:
    def test_order_id_shape(self):
        assert ORDER_ID_RE.match(generate_order_id())

    def test_refund_ref_shape(self):
        assert re.match(r"^REF\d{13}[0-9a-f]{8}$", generate_refund_ref())

    def test_customer_id_prefix(self):
        assert generate_customer_id("payer@example.com").startswith("CUST")

    @pytest.mark.asyncio
    async def test_concurrent_order_ids_unique(self):
        """10,000 ids generated across threads and tasks never collide."""

        def batch(n):
            return [generate_order_id() for _ in range(n)]

        batches = await asyncio.gather(*(asyncio.to_thread(batch, 500) for _ in range(20)))
        ids = [order_id for b in batches for order_id in b]
        assert len(ids) == 10_000
        assert len(set(ids)) == 10_000


class TestFormatting:
    def test_amount_two_decimals(self):
        assert format_amount(1000) == "1000.00"
        assert format_amount("99.5") == "99.50"
        assert format_amount(Decimal("10.005")) == "10.01"

    def test_float_amount_has_no_drift(self):
        assert to_decimal(0.1 + 0.2) == Decimal("0.30")

    def test_name_split(self):
        assert parse_customer_name("Asha Rao Kulkarni") == ("Asha", "Rao Kulkarni")
        assert parse_customer_name("Madonna") == ("Madonna", "Madonna")
        assert parse_customer_name("") == ("", "")

    def test_phone_validation(self):
        assert validate_phone_number("9876543210")
        assert validate_phone_number("+91 98765-43210")
        assert not validate_phone_number("12345")
        assert not validate_phone_number("5876543210")

    def test_phone_formatting(self):
        assert format_phone_number("9876543210") == "+91 9876543210"
        assert format_phone_number("919876543210") == "+919876543210"
        assert format_phone_number("+919876543210") == "+919876543210"


class TestGatewaySelection:
    def test_mock_environment(self, settings):
        assert isinstance(build_gateway(settings), MockGateway)

    def test_sandbox_environment(self, settings):
        sandbox = settings.model_copy(update={"gateway_environment": "sandbox"})
        gateway = build_gateway(sandbox)
        assert isinstance(gateway, SmartGatewayClient)
        assert sandbox.base_url == "https://smartgatewayuat.hdfcbank.com"

    def test_production_url(self, settings):
        production = settings.model_copy(update={"gateway_environment": "production"})
        assert production.base_url == "https://smartgateway.hdfcbank.com"

    def test_missing_credentials_fail_fast(self):
        settings = Settings(gateway_api_key="", gateway_merchant_id="M1", gateway_response_key="")
        with pytest.raises(ConfigurationError) as exc_info:
            build_gateway(settings)
        assert exc_info.value.missing == ["GATEWAY_API_KEY", "GATEWAY_RESPONSE_KEY"]


class TestMockGateway:
    @pytest.mark.asyncio
    async def test_session_payload(self, gateway):
        result = await gateway.create_session("ORD1", 1000, "INR", Customer(email="payer@example.com", name="Asha Rao"))
        assert result.order_id == "ORD1"
        assert result.session_id == "mock_ORD1"
        assert result.payment_links["web"].startswith("http://testserver/payment/success")
        assert result.customer_id.startswith("CUST")

    @pytest.mark.asyncio
    async def test_scripted_statuses_repeat_last(self, gateway):
        gateway.script("ORD1", [10, 21])
        seen = [(await gateway.get_status("ORD1")).status_id for _ in range(3)]
        assert seen == [10, 21, 21]
        assert gateway.status_calls["ORD1"] == 3

    @pytest.mark.asyncio
    async def test_default_status_is_charged(self, gateway):
        result = await gateway.get_status("ORD9")
        assert result.status_id == 21
        assert result.status == "CHARGED"
        assert result.amount == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_refund(self, gateway):
        result = await gateway.process_refund("ORD1", "250", note="partial")
        assert result.success
        assert result.amount == "250.00"
        assert result.refund_ref_no.startswith("REF")
