"""Shared test fixtures."""

import pytest
import pytest_asyncio

from paygate.audit.ledger import AuditLedger
from paygate.config import Settings
from paygate.database import create_session_factory, init_db
from paygate.engine.poller import StatusPoller
from paygate.providers.mock_provider import MockGateway

RESPONSE_KEY = "test_response_key_0123456789"


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        gateway_api_key="test_api_key",
        gateway_merchant_id="TESTMERCHANT",
        gateway_response_key=RESPONSE_KEY,
        gateway_environment="mock",
        app_url="http://testserver",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        log_level="DEBUG",
    )


@pytest_asyncio.fixture
async def ledger(settings: Settings):
    """Ledger over a fresh file-backed database per test.

    A file (not :memory:) because the ledger opens a separate connection for
    every read and the audit trail reads run concurrently.
    """
    engine, session_factory = create_session_factory(settings.database_url)
    await init_db(engine)
    yield AuditLedger(session_factory, session_ttl_minutes=settings.session_ttl_minutes)
    await engine.dispose()


@pytest.fixture
def gateway(settings: Settings) -> MockGateway:
    return MockGateway(settings)


@pytest.fixture
def poller(gateway: MockGateway, ledger: AuditLedger) -> StatusPoller:
    return StatusPoller(gateway, ledger, max_attempts=5, interval_seconds=0.0, sleep=_no_sleep)
