"""Retry controller with exponential backoff built on tenacity.

Only errors tagged :attr:`ErrorKind.TRANSIENT` are retried. Missing-pricing
failures get a single extra attempt; everything else (including exceptions
outside the :class:`RateCompareError` hierarchy) is raised immediately.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception

from ratecompare.config import RetryPolicy
from ratecompare.core.exceptions import NoPricingDataFound, RateCompareError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# NoPricingDataFound stops after this many attempts (one retry).
NO_PRICING_MAX_ATTEMPTS = 2


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RateCompareError) and exc.is_transient


def _stop_for(policy: RetryPolicy) -> Callable[[RetryCallState], bool]:
    def stop(retry_state: RetryCallState) -> bool:
        if retry_state.attempt_number > policy.max_retries:
            return True
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        return (
            isinstance(exc, NoPricingDataFound)
            and retry_state.attempt_number >= NO_PRICING_MAX_ATTEMPTS
        )

    return stop


def _wait_for(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        # attempt_number is 1 after the first failure, so the first retry
        # waits exactly base_delay.
        return policy.base_delay * policy.backoff_multiplier ** (retry_state.attempt_number - 1)

    return wait


def _log_retry(log) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        log.warning(
            "retrying_after_transient_error",
            attempt=retry_state.attempt_number,
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error_code=getattr(exc, "code", type(exc).__name__),
            error=str(exc),
        )

    return before_sleep


async def with_retry(
    op: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    log=None,
) -> T:
    """Run ``op`` until it succeeds or the retry budget is spent.

    Args:
        op: Zero-argument coroutine function performing one attempt
        policy: Retry budget and backoff parameters
        sleep: Awaitable sleep used between attempts
        log: Bound logger for retry events

    Returns:
        The value returned by the first successful attempt

    Raises:
        The last attempt's exception, with ``attempts`` set to the number
        of invocations made.
    """
    retrying = AsyncRetrying(
        stop=_stop_for(policy),
        wait=_wait_for(policy),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry(log or logger),
        sleep=sleep,
        reraise=True,
    )
    attempts = 0

    try:
        async for attempt in retrying:
            with attempt:
                attempts += 1
                result = await op()
    except Exception as e:
        e.attempts = attempts
        raise

    return result
