# =============================================================================
# site_core/utils/retry.py
# Retry with Exponential Backoff
# =============================================================================
"""
Explicit retry policy plus a generic async combinator built on tenacity.

    policy = RetryPolicy(max_attempts=3)
    result = await retry_with_backoff(call_provider, policy)

Delays follow ``min(base_delay_ms * 2**attempt, max_delay_ms)``; attempt is
zero-based, so the default policy waits 1s then 2s between three attempts.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar
import logging

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff(self, attempt: int) -> int:
        """Delay in milliseconds after the zero-based ``attempt`` failed."""
        return min(self.base_delay_ms * 2 ** attempt, self.max_delay_ms)

    def wait_seconds(self, retry_state: RetryCallState) -> float:
        """tenacity wait callback; ``attempt_number`` is one-based."""
        return self.backoff(retry_state.attempt_number - 1) / 1000


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """
    Run ``operation`` until it succeeds or the policy is exhausted.

    Each call builds a fresh retrying controller, so nothing is carried
    between calls.

    Raises:
        The last exception raised by ``operation`` once every attempt failed.
    """
    policy = policy if policy is not None else RetryPolicy()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_seconds,
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )

    try:
        return await retrying(operation)
    except retry_on as e:
        logger.error(f"{description} failed after {policy.max_attempts} attempts: {e}")
        raise
