"""
Bounded exponential backoff with jitter for idempotent async operations.

Built on tenacity. The first attempt runs immediately; after each failure the
wait is `delay * (1 + uniform(-jitter, +jitter))` and the delay is multiplied
by the backoff factor. When an error carries a `retry_after` hint (from a
Retry-After header) the wait is at least that long. Once attempts run out a
RetriesExhaustedError wrapping the last error is raised.
"""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_JITTER_FACTOR = 0.1


class RetriesExhaustedError(Exception):
    """All attempts failed; `last_error` is the final underlying exception."""

    def __init__(self, attempts: int, last_error: BaseException, label: str = "operation"):
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error
        self.label = label


def always_retry(exc: BaseException) -> bool:
    return True


class JitteredBackoff(wait_base):
    """tenacity wait strategy: exponential delay scaled by a symmetric jitter."""

    def __init__(self, initial_delay: float, backoff_factor: float, jitter_factor: float,
                 rng: Optional[random.Random] = None):
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.jitter_factor = jitter_factor
        self.rng = rng or random.Random()

    def __call__(self, retry_state: RetryCallState) -> float:
        current = self.initial_delay * (self.backoff_factor ** (retry_state.attempt_number - 1))
        jitter = self.rng.uniform(-self.jitter_factor, self.jitter_factor)
        delay = max(0.0, current * (1 + jitter))

        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            retry_after = getattr(outcome.exception(), "retry_after", None)
            if retry_after:
                delay = max(delay, float(retry_after))
        return delay


class RetryPolicy:
    """Retry tuning; `run` applies it to one operation."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        jitter_factor: float = DEFAULT_JITTER_FACTOR,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if initial_delay < 0 or backoff_factor < 0 or jitter_factor < 0:
            raise ValueError("retry delays and factors must be non-negative")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.jitter_factor = jitter_factor

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, initial_delay={self.initial_delay}, "
            f"backoff_factor={self.backoff_factor}, jitter_factor={self.jitter_factor})"
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        retry_if: Callable[[BaseException], bool] = always_retry,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        label: str = "operation",
    ) -> T:
        return await run_with_retry(
            operation, policy=self, retry_if=retry_if, sleep=sleep, rng=rng, label=label
        )


DEFAULT_POLICY = RetryPolicy()


def _log_before_sleep(label: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def log_it(retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"[retry] {label}: attempt {retry_state.attempt_number}/{max_attempts} failed, "
            f"retrying in {delay:.2f}s: {error}"
        )
    return log_it


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy = DEFAULT_POLICY,
    retry_if: Callable[[BaseException], bool] = always_retry,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
    label: str = "operation",
) -> T:
    """
    Run `operation` until it succeeds or the policy's attempts are used up.

    Errors rejected by `retry_if` propagate unchanged on the attempt that
    raised them. Cancellation is never retried.

    Raises:
        RetriesExhaustedError: every attempt failed with a retryable error
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=JitteredBackoff(policy.initial_delay, policy.backoff_factor, policy.jitter_factor, rng),
        retry=retry_if_exception(lambda exc: isinstance(exc, Exception) and retry_if(exc)),
        sleep=sleep,
        before_sleep=_log_before_sleep(label, policy.max_attempts),
        reraise=False,
    )
    try:
        async for attempt in retrying:
            with attempt:
                return await operation()
    except RetryError as exc:
        last_attempt = exc.last_attempt
        last_error = last_attempt.exception()
        logger.error(f"[retry] {label}: max retry attempts ({policy.max_attempts}) reached: {last_error}")
        raise RetriesExhaustedError(last_attempt.attempt_number, last_error, label) from last_error
    raise AssertionError("retry loop exited without a result")
