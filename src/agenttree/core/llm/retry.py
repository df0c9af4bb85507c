"""Classified retry with exponential backoff."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from agenttree.errors import AgentTreeError
from agenttree.logging import get_logger

log = get_logger("retry")

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between.

    ``retries`` counts attempts after the first, so a call is made at most
    ``retries + 1`` times. The wait before retry ``n`` (0-based) is
    ``backoff_ms * 2**n`` milliseconds.
    """

    retries: int = 2
    backoff_ms: int = 500

    def delay(self, attempt: int) -> float:
        return self.backoff_ms * (2**attempt) / 1000.0


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: SleepFn = asyncio.sleep,
    can_retry: Callable[[AgentTreeError], bool] | None = None,
    label: str = "call",
) -> T:
    """Run ``operation`` and retry it on retryable AgentTreeErrors.

    Non-retryable errors and errors left after the budget is spent are
    re-raised unchanged. Other exceptions are never retried.

    Args:
        operation: Zero-argument coroutine factory.
        policy: Retry budget and backoff.
        sleep: Awaitable sleep, injectable for tests.
        can_retry: Extra veto checked after the error kind.
        label: Name used in log messages.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except AgentTreeError as e:
            retry = e.retryable and attempt < policy.retries
            if retry and can_retry is not None:
                retry = can_retry(e)
            if not retry:
                raise
            wait = policy.delay(attempt)
            log.info(
                "%s failed (%s), retry %d/%d in %.2fs",
                label,
                e.kind.value,
                attempt + 1,
                policy.retries,
                wait,
            )
            await sleep(wait)
            attempt += 1
