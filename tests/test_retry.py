# tests/test_retry.py

from __future__ import annotations

import asyncio

import pytest

from tasksync.core.errors import PermanentError, StaleRevisionError, TransientError
from tasksync.tasks.retry import RetryPolicy, call_with_retry


def test_default_backoff_schedule() -> None:
    policy = RetryPolicy()
    assert policy.max_attempts == 5
    assert policy.delays() == pytest.approx([0.2, 0.4, 0.8, 1.6])


def test_policy_from_settings_clamps_attempts(settings) -> None:
    settings.retry_max_attempts = 0
    settings.retry_base_delay_seconds = 0.5
    policy = RetryPolicy.from_settings(settings)
    assert policy.max_attempts == 1
    assert policy.delay_for(2) == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_sleeps_between_transient_failures() -> None:
    slept: list[float] = []
    calls = 0

    async def fake_sleep(delay: float) -> None:
        slept.append(delay)

    async def flaky() -> str:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise TransientError("503", status_code=503)
        return "ok"

    result, attempts = await call_with_retry(flaky, RetryPolicy(), timeout=None, what="flaky", sleep=fake_sleep)

    assert (result, attempts) == ("ok", 3)
    assert slept == pytest.approx([0.2, 0.4])


@pytest.mark.asyncio
async def test_exhaustion_raises_permanent_chained_to_last_transient() -> None:
    async def always_down() -> None:
        raise TransientError("503", status_code=503)

    async def no_sleep(_delay: float) -> None:
        return

    with pytest.raises(PermanentError) as exc_info:
        await call_with_retry(always_down, RetryPolicy(max_attempts=3), timeout=None, what="down", sleep=no_sleep)

    assert exc_info.value.attempts == 3
    assert exc_info.value.status_code == 503
    assert isinstance(exc_info.value.__cause__, TransientError)


@pytest.mark.asyncio
async def test_non_transient_errors_propagate_immediately() -> None:
    calls = 0

    async def stale() -> None:
        nonlocal calls
        calls += 1
        raise StaleRevisionError("T1", 1)

    with pytest.raises(StaleRevisionError):
        await call_with_retry(stale, RetryPolicy(), timeout=None, what="stale")
    assert calls == 1


@pytest.mark.asyncio
async def test_timeout_is_retried_as_transient() -> None:
    calls = 0

    async def hangs() -> None:
        nonlocal calls
        calls += 1
        await asyncio.sleep(1.0)

    with pytest.raises(PermanentError, match="timed out"):
        await call_with_retry(hangs, RetryPolicy(base_delay=0.0, max_attempts=2), timeout=0.01, what="hangs")
    assert calls == 2
