from paygate.config import Settings
from paygate.providers.base import Customer, PaymentGateway, RefundResult, SessionResult, StatusResult
from paygate.providers.mock_provider import MockGateway
from paygate.providers.smartgateway import SmartGatewayClient


def build_gateway(settings: Settings) -> PaymentGateway:
    """Pick the gateway implementation for the configured environment."""
    if settings.gateway_environment == "mock":
        return MockGateway(settings)
    return SmartGatewayClient(settings)


__all__ = [
    "Customer",
    "MockGateway",
    "PaymentGateway",
    "RefundResult",
    "SessionResult",
    "SmartGatewayClient",
    "StatusResult",
    "build_gateway",
]
