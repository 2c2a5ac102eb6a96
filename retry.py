"""Bounded retry with exponential backoff for upstream calls.

Policy:
    - RATE_LIMIT / TIMEOUT errors are retried until max_attempts attempts
      have been made.
    - Any other error gets exactly one retry before it propagates.
    - Delay after failure n is min(base_delay * 2**(n-1), max_delay), raised
      to at least retry_after + retry_after_buffer when the upstream sent a
      hint, plus uniform jitter in [0, jitter).

Each call site runs its own tenacity loop; there is no coordination between
retries of different calls.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type

from errors import error_kind

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Non-transient errors fail on this occurrence
OTHER_ERROR_MAX_FAILURES = 2


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff shape.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Delay in seconds after the first failure
        max_delay: Ceiling for the exponential component
        jitter: Upper bound of the random delay added to every wait
        retry_after_buffer: Added on top of an upstream retry-after hint
    """

    max_attempts: int = 5
    base_delay: float = 2.5
    max_delay: float = 20.0
    jitter: float = 0.3
    retry_after_buffer: float = 0.5


def compute_delay(
    attempt: int,
    policy: RetryPolicy,
    retry_after: float | None = None,
    rng: Callable[[], float] = random.random,
) -> float:
    """Compute the wait before the next attempt.

    Args:
        attempt: Number of failed attempts so far (1-based)
        policy: Retry policy
        retry_after: Upstream hint in seconds, if any
        rng: Source of uniform [0, 1) values for jitter

    Returns:
        Delay in seconds
    """
    delay = min(policy.base_delay * 2 ** (attempt - 1), policy.max_delay)
    if retry_after is not None:
        delay = max(delay, retry_after + policy.retry_after_buffer)
    return delay + rng() * policy.jitter


def _last_error(retry_state: RetryCallState) -> BaseException | None:
    outcome = retry_state.outcome
    return outcome.exception() if outcome is not None else None


def _stop_for(policy: RetryPolicy, label: str) -> Callable[[RetryCallState], bool]:
    def stop(retry_state: RetryCallState) -> bool:
        attempt = retry_state.attempt_number
        error = _last_error(retry_state)
        kind = error_kind(error)
        if not kind.is_transient and attempt >= OTHER_ERROR_MAX_FAILURES:
            return True
        if attempt >= policy.max_attempts:
            logger.warning(
                "Retry budget exhausted | call=%s attempts=%d kind=%s error=%s",
                label, attempt, kind.value, error,
            )
            return True
        return False

    return stop


def _wait_for(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        error = _last_error(retry_state)
        return compute_delay(
            retry_state.attempt_number, policy, getattr(error, "retry_after", None), rng=random.random,
        )

    return wait


def _log_retry(policy: RetryPolicy, label: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Retrying | call=%s attempt=%d/%d kind=%s wait=%.2fs",
            label, retry_state.attempt_number, policy.max_attempts,
            error_kind(_last_error(retry_state)).value, delay,
        )

    return before_sleep


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "call",
) -> T:
    """Run an async operation under the retry policy.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy
        sleep: Awaitable sleep (injectable for tests)
        label: Name used in log messages

    Returns:
        The operation's result

    Raises:
        The last error once the attempt budget is exhausted, or a
        non-transient error on its second occurrence.
    """
    retrying = AsyncRetrying(
        stop=_stop_for(policy, label),
        wait=_wait_for(policy),
        retry=retry_if_exception_type(Exception),
        before_sleep=_log_retry(policy, label),
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
    raise AssertionError("unreachable")
