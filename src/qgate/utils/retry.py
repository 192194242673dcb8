"""Bounded retry with exponential backoff for async operations."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def retry_on_status(
    statuses: Iterable[int] = DEFAULT_RETRYABLE_STATUSES,
) -> Callable[[BaseException], bool]:
    """Build a classifier that retries listed HTTP statuses and transport errors."""
    allowed = frozenset(statuses)

    def is_retryable(error: BaseException) -> bool:
        if isinstance(error, httpx.TransportError):
            return True
        status = getattr(error, "status_code", None)
        if status is None:
            response = getattr(error, "response", None)
            status = getattr(response, "status_code", None)
        return status is not None and status in allowed

    return is_retryable


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, how long to wait, and which errors qualify."""

    max_attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    is_retryable: Callable[[BaseException], bool] = field(default_factory=retry_on_status)

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows zero-based ``attempt``."""
        return min(self.base_delay * (2**attempt), self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds or the policy gives up.

    The final error is re-raised as-is so callers can inspect the original
    exception type and attributes.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Attempt cap, backoff bounds and retry classifier
        on_retry: Observer called with (attempt number, error, delay)
        sleep: Coroutine used to wait between attempts

    Returns:
        Whatever ``operation`` returns on the first successful attempt
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as exc:
            if attempt == attempts - 1 or not policy.is_retryable(exc):
                raise
            delay = policy.delay_for(attempt)
            logger.debug(
                "Attempt %d/%d failed (%s); retrying in %.1fs", attempt + 1, attempts, exc, delay
            )
            if on_retry is not None:
                on_retry(attempt + 1, exc, delay)
            await sleep(delay)
    raise AssertionError("unreachable")
