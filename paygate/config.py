"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

from paygate.errors import ConfigurationError

GatewayEnvironment = Literal["sandbox", "production", "mock"]


class Settings(BaseSettings):
    # Gateway credentials
    gateway_api_key: str = ""
    gateway_merchant_id: str = ""
    gateway_response_key: str = ""  # HMAC secret for callback signatures
    gateway_payment_page_client_id: str = ""

    # Endpoints
    gateway_environment: GatewayEnvironment = "sandbox"
    gateway_sandbox_url: str = "https://smartgatewayuat.hdfcbank.com"
    gateway_production_url: str = "https://smartgateway.hdfcbank.com"
    gateway_api_version: str = "2023-06-30"
    gateway_timeout_seconds: float = 30.0

    # Payer-facing URLs
    app_url: str = "http://localhost:8000"
    return_url: str = ""
    success_url: str = ""
    cancel_url: str = ""

    # Storage and runtime
    database_url: str = "sqlite+aiosqlite:///./paygate.db"
    log_level: str = "INFO"
    session_ttl_minutes: int = 30

    # Status polling
    poll_max_attempts: int = 30
    poll_interval_seconds: float = 5.0
    poll_transient_retries: int = 2

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def base_url(self) -> str:
        if self.gateway_environment == "production":
            return self.gateway_production_url.rstrip("/")
        return self.gateway_sandbox_url.rstrip("/")

    @property
    def payment_page_client_id(self) -> str:
        return self.gateway_payment_page_client_id or self.gateway_merchant_id

    @property
    def resolved_return_url(self) -> str:
        return self.return_url or f"{self.app_url.rstrip('/')}/api/payments/response"

    @property
    def resolved_success_url(self) -> str:
        return self.success_url or f"{self.app_url.rstrip('/')}/payment/success"

    @property
    def resolved_cancel_url(self) -> str:
        return self.cancel_url or f"{self.app_url.rstrip('/')}/payment/cancel"

    def missing_credentials(self) -> list[str]:
        required = {
            "GATEWAY_API_KEY": self.gateway_api_key,
            "GATEWAY_MERCHANT_ID": self.gateway_merchant_id,
            "GATEWAY_RESPONSE_KEY": self.gateway_response_key,
        }
        return [name for name, value in required.items() if not value]

    def require_credentials(self) -> None:
        """Raise ConfigurationError unless every gateway credential is set."""
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(
                "Missing gateway configuration: " + ", ".join(missing),
                missing=missing,
            )


@lru_cache()
def get_settings() -> Settings:
    """
    Return the process-wide settings instance.

    Only the entry point calls this; components receive Settings explicitly.
    """
    return Settings()
