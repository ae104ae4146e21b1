from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class RetryPolicy:
    retries: int = 0
    retry_delay_ms: float = 300
    backoff_factor: float = 2.0

    @property
    def max_attempts(self) -> int:
        return max(int(self.retries), 0) + 1

    def delay_ms(self, attempt: int) -> int:
        """Delay after failed attempt ``attempt`` (0-based)."""
        return round(self.retry_delay_ms * (self.backoff_factor ** attempt))


@dataclass(slots=True)
class RetryOutcome(Generic[T]):
    value: T
    retry_used: int


async def run_with_retry(
    task: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    label: str = "task",
) -> RetryOutcome[T]:
    """Run ``task(attempt)`` until it succeeds or the policy is exhausted.

    The last error is re-raised unchanged once every attempt has failed.
    """
    last_error: Exception | None = None

    for attempt in range(policy.max_attempts):
        try:
            value = await task(attempt)
            return RetryOutcome(value=value, retry_used=attempt)
        except Exception as exc:
            last_error = exc
            if attempt + 1 >= policy.max_attempts:
                break
            delay = policy.delay_ms(attempt)
            logger.debug(
                f"{label} failed on attempt {attempt + 1}/{policy.max_attempts}: {exc}; "
                f"retrying in {delay}ms"
            )
            if delay > 0:
                await sleep(delay / 1000.0)

    assert last_error is not None
    raise last_error
