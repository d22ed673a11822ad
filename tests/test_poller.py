"""Tests for the status poller."""

import asyncio

import pytest

from paygate.engine.poller import StatusPoller
from paygate.errors import GatewayNetworkError, PermanentError
from paygate.models.enums import ObservationSource
from paygate.providers.mock_provider import MockGateway


async def _no_sleep(seconds):
    return None


class TrackingGateway(MockGateway):
    """Mock gateway that records how many status calls overlap."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.peak = 0

    async def get_status(self, order_id):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            return await super().get_status(order_id)
        finally:
            self.in_flight -= 1


class FlakyGateway(MockGateway):
    """Fails the first ``failures`` status calls with a transport error."""

    def __init__(self, *args, failures=1, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures

    async def get_status(self, order_id):
        if self.failures > 0:
            self.failures -= 1
            raise GatewayNetworkError("connection reset")
        return await super().get_status(order_id)


class TestPollTermination:
    @pytest.mark.asyncio
    async def test_stops_on_first_terminal(self, gateway, poller):
        """N pollable results then a terminal one means exactly N+1 calls."""
        gateway.script("ORD1", [10, 23, 28, 21])
        result = await poller.poll("ORD1")

        assert gateway.status_calls["ORD1"] == 4
        assert result.attempts == 4
        assert result.is_terminal
        assert not result.max_attempts_reached
        assert result.classification.name == "CHARGED"

    @pytest.mark.asyncio
    async def test_immediate_terminal(self, gateway, poller):
        gateway.script("ORD1", [26])
        result = await poller.poll("ORD1")
        assert gateway.status_calls["ORD1"] == 1
        assert result.classification.outcome.value == "failed"

    @pytest.mark.asyncio
    async def test_budget_exhausted(self, gateway, poller):
        gateway.script("ORD1", [28])
        result = await poller.poll("ORD1", max_attempts=3)

        assert gateway.status_calls["ORD1"] == 3
        assert result.attempts == 3
        assert result.max_attempts_reached
        assert not result.is_terminal
        assert result.classification.name == "AUTHORIZING"

    @pytest.mark.asyncio
    async def test_zero_budget_rejected(self, gateway, poller):
        with pytest.raises(ValueError):
            await poller.poll("ORD1", max_attempts=0)
        assert "ORD1" not in gateway.status_calls

    @pytest.mark.asyncio
    async def test_no_sleep_after_last_attempt(self, gateway, ledger):
        sleeps = []

        async def record_sleep(seconds):
            sleeps.append(seconds)

        poller = StatusPoller(gateway, ledger, max_attempts=3, interval_seconds=2.0, sleep=record_sleep)
        gateway.script("ORD1", [10])
        await poller.poll("ORD1")
        assert sleeps == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_every_observation_recorded(self, gateway, poller, ledger):
        gateway.script("ORD1", [10, 23, 21])
        await poller.poll("ORD1")

        details = await ledger.get_transaction_details("ORD1")
        assert [d.status_id for d in details] == [21, 23, 10]
        assert all(d.source == ObservationSource.POLL.value for d in details)
        assert all(d.signature_verified for d in details)

        history = await ledger.get_status_history("ORD1")
        assert [h.new_status for h in history] == ["CHARGED", "PENDING_VBV", "NEW"]


class TestPollEscalation:
    @pytest.mark.asyncio
    async def test_integration_error_stops_and_escalates(self, gateway, poller, ledger):
        gateway.script("ORD1", [10, 20])
        result = await poller.poll("ORD1")

        assert result.attempts == 2
        assert result.is_terminal
        assert result.requires_escalation

        events = await ledger.get_security_logs("ORD1")
        assert [(e.event_type, e.severity) for e in events] == [("gateway_integration_error", "high")]

    @pytest.mark.asyncio
    async def test_unknown_status_exhausted_is_logged(self, gateway, poller, ledger):
        gateway.script("ORD1", [99])
        result = await poller.poll("ORD1", max_attempts=2)

        assert result.max_attempts_reached
        assert not result.classification.is_known
        events = await ledger.get_security_logs("ORD1")
        assert len(events) == 1
        assert events[0].event_type == "unknown_status_poll_exhausted"
        assert events[0].severity == "medium"

    @pytest.mark.asyncio
    async def test_known_pending_exhausted_has_no_security_event(self, gateway, poller, ledger):
        gateway.script("ORD1", [23])
        await poller.poll("ORD1", max_attempts=2)
        assert await ledger.get_security_logs("ORD1") == []


class TestPollCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_first_attempt(self, gateway, poller):
        cancel = asyncio.Event()
        cancel.set()
        result = await poller.poll("ORD1", cancel_event=cancel)

        assert result.cancelled
        assert result.attempts == 0
        assert "ORD1" not in gateway.status_calls

    @pytest.mark.asyncio
    async def test_cancelled_between_attempts(self, gateway, poller):
        gateway.script("ORD1", [10])
        cancel = asyncio.Event()
        task = asyncio.create_task(poller.poll("ORD1", interval_seconds=5.0, cancel_event=cancel))

        while gateway.status_calls.get("ORD1", 0) < 1:
            await asyncio.sleep(0.01)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=2.0)

        assert result.cancelled
        assert result.attempts == 1
        assert gateway.status_calls["ORD1"] == 1


class TestPollConcurrency:
    @pytest.mark.asyncio
    async def test_same_order_polls_are_serialized(self, settings, ledger):
        gateway = TrackingGateway(settings, latency_ms=20)
        gateway.script("ORD1", [10, 10, 21])
        poller = StatusPoller(gateway, ledger, max_attempts=5, interval_seconds=0.0, sleep=_no_sleep)

        first, second = await asyncio.gather(poller.poll("ORD1"), poller.poll("ORD1"))

        assert gateway.peak == 1
        assert first.is_terminal and second.is_terminal
        assert first.attempts + second.attempts == 4
        assert poller._locks == {}

    @pytest.mark.asyncio
    async def test_different_orders_run_concurrently(self, settings, ledger):
        gateway = TrackingGateway(settings, latency_ms=20)
        poller = StatusPoller(gateway, ledger, max_attempts=5, interval_seconds=0.0, sleep=_no_sleep)

        results = await asyncio.gather(poller.poll("ORD1"), poller.poll("ORD2"))

        assert gateway.peak == 2
        assert all(r.is_terminal for r in results)


class TestTransientFailures:
    @pytest.mark.asyncio
    async def test_transient_error_retried_within_attempt(self, settings, ledger):
        gateway = FlakyGateway(settings, failures=1)
        poller = StatusPoller(gateway, ledger, max_attempts=3, interval_seconds=0.0, sleep=_no_sleep)

        result = await poller.poll("ORD1")
        assert result.attempts == 1
        assert result.is_terminal

    @pytest.mark.asyncio
    async def test_permanent_error_propagates(self, settings, ledger):
        class RejectingGateway(MockGateway):
            async def get_status(self, order_id):
                raise PermanentError("order not found", status_code=404)

        poller = StatusPoller(RejectingGateway(settings), ledger, interval_seconds=0.0, sleep=_no_sleep)
        with pytest.raises(PermanentError):
            await poller.poll("ORD1")
        assert poller._locks == {}
