"""
Status poller: drives an order to a terminal state.

Flow for each attempt:

  1. get_status from the gateway (transient failures retried via with_retry)
  2. classify the numeric status id
  3. record the observation in the ledger (before returning control)
  4. stop on terminal / integration error, otherwise sleep a fixed interval

The attempt budget (max_attempts x interval) is the timeout. When it runs
out the last non-terminal result is returned flagged max_attempts_reached,
never silently treated as success or failure. Polls for the same order are
serialized within the process; polls for different orders run freely.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from paygate.audit.ledger import AuditLedger
from paygate.engine.retry import with_retry
from paygate.models.enums import ObservationSource, Severity
from paygate.providers.base import PaymentGateway, StatusResult
from paygate.status.classifier import StatusClassification, classify

logger = logging.getLogger("paygate.poller")


@dataclass
class StatusCheck:
    """One observed and classified status."""

    order_id: str
    result: StatusResult
    classification: StatusClassification

    @property
    def is_terminal(self) -> bool:
        return self.classification.is_terminal


@dataclass
class PollResult:
    order_id: str
    attempts: int
    last_check: Optional[StatusCheck]
    max_attempts_reached: bool = False
    cancelled: bool = False

    @property
    def classification(self) -> Optional[StatusClassification]:
        return self.last_check.classification if self.last_check else None

    @property
    def is_terminal(self) -> bool:
        return bool(self.last_check and self.last_check.is_terminal)

    @property
    def requires_escalation(self) -> bool:
        return bool(self.last_check and self.last_check.classification.requires_escalation)


class StatusPoller:
    def __init__(
        self,
        gateway: PaymentGateway,
        ledger: AuditLedger,
        max_attempts: int = 30,
        interval_seconds: float = 5.0,
        transient_retries: int = 2,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._gateway = gateway
        self._ledger = ledger
        self._max_attempts = max_attempts
        self._interval = interval_seconds
        self._transient_retries = transient_retries
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    async def check_status(
        self,
        order_id: str,
        source: ObservationSource = ObservationSource.POLL,
    ) -> StatusCheck:
        """Fetch, classify and record one status observation."""
        result = await with_retry(
            self._gateway.get_status,
            order_id,
            max_retries=self._transient_retries,
            sleep=self._sleep,
        )
        classification = classify(result.status_id)

        # Order-status responses come straight from the gateway over an
        # authenticated channel, so they count as verified observations.
        await self._ledger.record_transaction(
            order_id,
            source=source,
            status=classification.name if classification.is_known else result.status,
            status_id=result.status_id,
            transaction_id=result.transaction_id,
            gateway_response=result.raw,
            signature_verified=True,
            signature_algorithm="ORDER_STATUS_API",
            note=classification.message,
        )

        logger.info(
            "Status order=%s id=%s label=%s terminal=%s poll=%s",
            order_id,
            result.status_id,
            result.status,
            classification.is_terminal,
            classification.should_poll,
        )
        return StatusCheck(order_id=order_id, result=result, classification=classification)

    async def poll(
        self,
        order_id: str,
        max_attempts: Optional[int] = None,
        interval_seconds: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollResult:
        """
        Poll until terminal, cancelled, or the attempt budget is spent.

        ``cancel_event`` is honoured between attempts; an in-flight gateway
        call is allowed to finish and its observation is still recorded.
        """
        if max_attempts is None:
            max_attempts = self._max_attempts
        elif max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        interval = self._interval if interval_seconds is None else interval_seconds

        async with self._order_lock(order_id):
            return await self._poll_locked(order_id, max_attempts, interval, cancel_event)

    async def _poll_locked(
        self,
        order_id: str,
        max_attempts: int,
        interval: float,
        cancel_event: Optional[asyncio.Event],
    ) -> PollResult:
        attempts = 0
        last: Optional[StatusCheck] = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Polling cancelled for %s after %d attempts", order_id, attempts)
                return PollResult(order_id, attempts, last, cancelled=True)

            attempts += 1
            logger.info("Polling attempt %d/%d for order %s", attempts, max_attempts, order_id)
            last = await self.check_status(order_id)

            if last.classification.requires_escalation:
                logger.error("Integration error for order %s: %s", order_id, last.classification.message)
                await self._ledger.log_security_event(
                    "gateway_integration_error",
                    Severity.HIGH,
                    f"Gateway could not route order {order_id}; operator escalation required",
                    order_id=order_id,
                    event_data={"status_id": last.result.status_id, "status": last.result.status},
                )
                return PollResult(order_id, attempts, last)

            if last.is_terminal:
                logger.info("Terminal status for order %s: %s", order_id, last.classification.name)
                return PollResult(order_id, attempts, last)

            if attempts >= max_attempts:
                await self._on_budget_exhausted(order_id, attempts, last)
                return PollResult(order_id, attempts, last, max_attempts_reached=True)

            await self._wait(interval, cancel_event)

    async def _wait(self, interval: float, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is None:
            await self._sleep(interval)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    async def _on_budget_exhausted(self, order_id: str, attempts: int, last: StatusCheck) -> None:
        if last.classification.is_known:
            logger.warning(
                "Max polling attempts (%d) reached for %s; last status %s",
                attempts,
                order_id,
                last.classification.name,
            )
            return

        # An unknown id that never resolves may be a new terminal code.
        logger.error(
            "Max polling attempts (%d) reached for %s on unrecognized status id %s",
            attempts,
            order_id,
            last.result.status_id,
        )
        await self._ledger.log_security_event(
            "unknown_status_poll_exhausted",
            Severity.MEDIUM,
            f"Polling exhausted on unrecognized status id {last.result.status_id} for order {order_id}",
            order_id=order_id,
            event_data={"status_id": last.result.status_id, "status": last.result.status, "attempts": attempts},
        )

    def _order_lock(self, order_id: str) -> "_OrderLock":
        return _OrderLock(self, order_id)


class _OrderLock:
    """Reference-counted per-order lock; the entry is dropped once unused."""

    def __init__(self, poller: StatusPoller, order_id: str):
        self._poller = poller
        self._order_id = order_id

    async def __aenter__(self):
        poller = self._poller
        lock = poller._locks.setdefault(self._order_id, asyncio.Lock())
        poller._lock_users[self._order_id] += 1
        try:
            await lock.acquire()
        except BaseException:
            self._release_ref()
            raise
        return lock

    async def __aexit__(self, *exc):
        self._poller._locks[self._order_id].release()
        self._release_ref()
        return False

    def _release_ref(self) -> None:
        poller = self._poller
        poller._lock_users[self._order_id] -= 1
        if poller._lock_users[self._order_id] <= 0:
            del poller._lock_users[self._order_id]
            poller._locks.pop(self._order_id, None)
