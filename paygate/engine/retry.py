"""
Exponential backoff retry for gateway calls.

The gateway client never retries on its own; callers that want a retry
policy (the status poller) wrap calls with ``with_retry``. Only retriable
GatewayErrors (429, 5xx, transport failures) are retried.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from paygate.errors import GatewayError, RateLimitError

logger = logging.getLogger("paygate.retry")

T = TypeVar("T")

BASE_DELAY = 1.0
MAX_DELAY = 30.0


async def with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 2,
    base_delay: float = BASE_DELAY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """
    Execute an async gateway call with exponential backoff on retriable errors.

    Raises:
        GatewayError: On permanent failure or exhausted retries.
    """
    delay = base_delay

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except GatewayError as e:
            if not e.retriable or attempt >= max_retries:
                if e.retriable:
                    logger.error("Exhausted %d retries for gateway call: %s", max_retries, e)
                raise

            sleep_for = min(delay, MAX_DELAY)
            if isinstance(e, RateLimitError) and e.retry_after:
                sleep_for = min(e.retry_after, MAX_DELAY)

            logger.warning(
                "Retriable error on attempt %d/%d: %s; sleeping %.1fs",
                attempt + 1,
                max_retries + 1,
                e,
                sleep_for,
            )
            await sleep(sleep_for)
            delay = min(delay * 2, MAX_DELAY)

    raise GatewayError("Unknown error after retries")
