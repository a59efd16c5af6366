"""Retry-with-exponential-backoff combinator used by every outbound call."""

import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from trade_signals.errors import is_retryable_upstream

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    is_retryable: Callable[[BaseException], bool] = is_retryable_upstream,
    description: str = "operation",
) -> T:
    """Await `operation()` up to `attempts` times.

    Waits base_delay * 2^(attempt-1) between attempts. Errors rejected by
    `is_retryable` and the error of the last attempt are re-raised unchanged.
    """

    def _log_retry(state: RetryCallState):
        exc = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0
        logger.warning(
            f"Retrying {description} (attempt {state.attempt_number}/{attempts}, "
            f"next in {delay:.2f}s): {exc}"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
    raise RuntimeError(f"{description}: retry loop exited without a result")
