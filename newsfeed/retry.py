# newsfeed/retry.py
"""Bounded retry with exponential backoff for async operations."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import UpstreamQuotaFailure
from .logging_setup import get_logger

logger = get_logger("newsfeed.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0    # seconds before the second attempt; doubles after that
    max_delay: float = 30.0


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "RETRYING",
        extra={
            "op": getattr(state.fn, "__name__", "call"),
            "attempt": state.attempt_number,
            "error": type(exc).__name__ if exc else None,
            "sleep_s": round(state.next_action.sleep, 2) if state.next_action else None,
        },
    )


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await `fn()` until it succeeds or `policy.max_attempts` is reached; the last
    error is re-raised. Each attempt is a fresh call. Quota failures are never retried.
    """
    policy = policy or RetryPolicy()
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay),
        retry=retry_if_not_exception_type((UpstreamQuotaFailure, asyncio.CancelledError)),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    ):
        with attempt:
            return await fn()
    raise RuntimeError("unreachable")  # pragma: no cover
