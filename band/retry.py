"""
Bounded retry with doubling backoff.

Used for paginated comment requests (sync) and for feed and post
navigation in the extraction pipeline (async). Only
TransientNetworkError (and subclasses) is retried; anything else propagates
on the first failure.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .errors import TransientNetworkError

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    max_attempts counts the first try (3 => 1 try + 2 retries).
    Delay after failure n is base_delay_seconds * 2**(n-1), capped.
    """
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter_ratio: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")


def compute_backoff_delay(failure_attempt: int, policy: RetryPolicy) -> float:
    """Delay before the next attempt, after ``failure_attempt`` failures (1-based)."""
    exponent = max(0, failure_attempt - 1)
    delay = min(policy.base_delay_seconds * (2 ** exponent), policy.max_delay_seconds)
    if policy.jitter_ratio > 0 and delay > 0:
        delay *= random.uniform(1.0 - policy.jitter_ratio, 1.0 + policy.jitter_ratio)
    return max(0.0, delay)


def call_with_retries(
    fn: Callable[[], T],
    policy: RetryPolicy,
    operation: str = "operation",
    sleep_fn: Callable[[float], None] = time.sleep,
) -> T:
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return fn()
        except TransientNetworkError as e:
            if attempt >= policy.max_attempts:
                log.warning("%s failed after %d attempts: %s", operation, attempt, e)
                raise
            delay = compute_backoff_delay(attempt, policy)
            log.info("%s failed (attempt %d/%d), retrying in %.1fs: %s",
                     operation, attempt, policy.max_attempts, delay, e)
            if delay > 0:
                sleep_fn(delay)
    raise RuntimeError(f"retry loop exited unexpectedly for {operation}")


async def call_with_retries_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation: str = "operation",
    sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn()
        except TransientNetworkError as e:
            if attempt >= policy.max_attempts:
                log.warning("%s failed after %d attempts: %s", operation, attempt, e)
                raise
            delay = compute_backoff_delay(attempt, policy)
            log.info("%s failed (attempt %d/%d), retrying in %.1fs: %s",
                     operation, attempt, policy.max_attempts, delay, e)
            if delay > 0:
                await sleep_fn(delay)
    raise RuntimeError(f"retry loop exited unexpectedly for {operation}")
