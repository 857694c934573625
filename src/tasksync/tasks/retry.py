# src/tasksync/tasks/retry.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from ..core.errors import PermanentError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """
    Exponential backoff for transient remote failures.

    max_attempts counts every call, the first one included:
    with the defaults a failing operation is tried 5 times, sleeping
    0.2, 0.4, 0.8 and 1.6 seconds in between.
    """

    base_delay: float = 0.2
    factor: float = 2.0
    max_attempts: int = 5

    @classmethod
    def from_settings(cls, settings) -> RetryPolicy:
        return cls(
            base_delay=float(getattr(settings, "retry_base_delay_seconds", 0.2)),
            factor=float(getattr(settings, "retry_factor", 2.0)),
            max_attempts=max(1, int(getattr(settings, "retry_max_attempts", 5))),
        )

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return max(0.0, self.base_delay) * (self.factor ** max(0, attempt - 1))

    def delays(self) -> list[float]:
        return [self.delay_for(i) for i in range(1, self.max_attempts)]


async def call_with_retry(
        fn: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        *,
        timeout: float | None,
        what: str,
        sleep: Sleep = asyncio.sleep,
) -> tuple[T, int]:
    """
    Run fn() until it succeeds or stops being retryable.

    - asyncio timeouts are converted to TransientError
    - TransientError is retried up to policy.max_attempts
    - anything else propagates unchanged on the first occurrence

    Returns (result, attempts). On exhaustion raises PermanentError chained to the last
    TransientError.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            if timeout is not None and timeout > 0:
                result = await asyncio.wait_for(fn(), timeout=timeout)
            else:
                result = await fn()
            return result, attempt
        except (TimeoutError, asyncio.TimeoutError) as e:
            last: TransientError = TransientError(f"{what}: timed out after {timeout}s")
            last.__cause__ = e
        except TransientError as e:
            last = e

        if attempt >= policy.max_attempts:
            logger.warning("%s: giving up after %d attempts (%s)", what, attempt, last)
            raise PermanentError(
                f"{what}: retries exhausted after {attempt} attempts: {last}",
                attempts=attempt,
                status_code=last.status_code,
            ) from last

        delay = policy.delay_for(attempt)
        logger.info("%s: transient failure (%s), retry %d/%d in %.2fs", what, last, attempt, policy.max_attempts - 1, delay)
        await sleep(delay)
