"""
Unit tests for the retry policy.
"""
import asyncio

import pytest

from vaporsource.core.retry import RetriesExhaustedError, RetryPolicy, run_with_retry


class TransientError(Exception):
    def __init__(self, message="transient", retry_after=None):
        super().__init__(message)
        self.retry_after = retry_after


class FatalError(Exception):
    pass


def flaky(failures, result="ok", error_factory=TransientError):
    """Operation that fails `failures` times then returns `result`."""
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) <= failures:
            raise error_factory()
        return result

    return operation, calls


@pytest.mark.asyncio
async def test_exhausts_after_max_attempts(sleeps):
    operation, calls = flaky(failures=100)
    policy = RetryPolicy(max_attempts=3, initial_delay=0.5)

    with pytest.raises(RetriesExhaustedError) as excinfo:
        await run_with_retry(operation, policy=policy, sleep=sleeps.sleep)

    assert len(calls) == 3
    assert len(sleeps) == 2
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.last_error, TransientError)


@pytest.mark.asyncio
async def test_success_on_second_attempt_sleeps_once(sleeps):
    operation, calls = flaky(failures=1, result="payload")

    result = await RetryPolicy(max_attempts=5).run(operation, sleep=sleeps.sleep)

    assert result == "payload"
    assert len(calls) == 2
    assert len(sleeps) == 1


@pytest.mark.asyncio
async def test_first_attempt_success_does_not_sleep(sleeps):
    operation, calls = flaky(failures=0)

    assert await run_with_retry(operation, sleep=sleeps.sleep) == "ok"
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately(sleeps):
    operation, calls = flaky(failures=5, error_factory=FatalError)

    with pytest.raises(FatalError):
        await run_with_retry(
            operation,
            retry_if=lambda exc: not isinstance(exc, FatalError),
            sleep=sleeps.sleep,
        )

    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_backoff_without_jitter_is_exponential(sleeps):
    operation, _ = flaky(failures=100)
    policy = RetryPolicy(max_attempts=4, initial_delay=1.0, backoff_factor=2.0, jitter_factor=0.0)

    with pytest.raises(RetriesExhaustedError):
        await policy.run(operation, sleep=sleeps.sleep)

    assert sleeps == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_jittered_delays_stay_within_bounds(sleeps):
    operation, _ = flaky(failures=100)
    policy = RetryPolicy(max_attempts=6, initial_delay=1.0, backoff_factor=2.0, jitter_factor=0.1)

    with pytest.raises(RetriesExhaustedError):
        await policy.run(operation, sleep=sleeps.sleep)

    assert len(sleeps) == 5
    for i, delay in enumerate(sleeps):
        base = 2.0 ** i
        assert base * 0.9 <= delay <= base * 1.1


@pytest.mark.asyncio
async def test_retry_after_sets_minimum_wait(sleeps):
    operation, _ = flaky(failures=1, error_factory=lambda: TransientError(retry_after=7))
    policy = RetryPolicy(max_attempts=3, initial_delay=0.1, jitter_factor=0.0)

    await policy.run(operation, sleep=sleeps.sleep)

    assert sleeps == [7.0]


@pytest.mark.asyncio
async def test_cancellation_is_not_retried(sleeps):
    calls = []

    async def operation():
        calls.append(1)
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await run_with_retry(operation, sleep=sleeps.sleep)

    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.parametrize("kwargs", [
    {"max_attempts": 0},
    {"initial_delay": -1.0},
    {"backoff_factor": -2.0},
    {"jitter_factor": -0.1},
])
def test_invalid_policy_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
