"""Outer retry loop with exponential backoff.

``with_retry`` runs an attempt coroutine up to ``max_retries + 1`` times.
After the ``n``-th failed attempt (1-based) it waits ``backoff_base * 2**n``
seconds before trying again, so with the default base of one second the
waits are 2 s, 4 s, 8 s …  The wait is an ``asyncio.sleep``: it suspends only
the calling task and is cancelled together with it.

Only :class:`~khoj_scraper.core.exceptions.ScraperError` subclasses are
retried; anything else (including ``CancelledError``) propagates untouched.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from khoj_scraper.core.exceptions import RetriesExhausted, ScraperError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """Successful result plus the bookkeeping the orchestrator reports.

    Attributes:
        value: What the successful attempt returned.
        retries: Retries consumed (0 if the first attempt succeeded).
        errors: Failed attempts before the success.
        elapsed_ms: Wall-clock time from entry to return.
    """

    value: T
    retries: int
    errors: int
    elapsed_ms: int


def backoff_delay(attempt: int, base: float = 1.0) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return base * (2 ** attempt)


async def with_retry(
    attempt_fn: Callable[[], Awaitable[T]],
    max_retries: int,
    *,
    backoff_base: float = 1.0,
    description: str = "attempt",
) -> RetryOutcome[T]:
    """Run ``attempt_fn`` until it succeeds or the attempt budget is spent.

    Args:
        attempt_fn: Zero-argument coroutine function performing one attempt.
        max_retries: Extra attempts allowed after the first (>= 0).
        backoff_base: Backoff base in seconds.
        description: Label used in log lines (usually the URL).

    Returns:
        A :class:`RetryOutcome`.

    Raises:
        RetriesExhausted: After ``max_retries + 1`` failed attempts; the last
            failure is chained as ``__cause__``.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    started = time.monotonic()
    attempt = 0
    while True:
        try:
            value = await attempt_fn()
        except ScraperError as exc:
            attempt += 1
            if attempt > max_retries:
                logger.error(
                    "retry: %s failed after %d attempt(s): %s", description, attempt, exc
                )
                raise RetriesExhausted(attempt, exc) from exc
            delay = backoff_delay(attempt, backoff_base)
            logger.warning(
                "retry: %s attempt %d/%d failed (%s), retrying in %.1fs",
                description,
                attempt,
                max_retries + 1,
                exc,
                delay,
            )
            await asyncio.sleep(delay)
            continue

        return RetryOutcome(
            value=value,
            retries=attempt,
            errors=attempt,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
