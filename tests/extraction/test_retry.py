"""Unit tests for the retry controller."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from khoj_scraper.core.exceptions import (
    ExtractionFailure,
    FetchFailure,
    PoolFailure,
    RetriesExhausted,
)
from khoj_scraper.extraction.retry import backoff_delay, with_retry


class _Flaky:
    """Fails ``failures`` times, then returns ``"ok"``."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or FetchFailure("HTTP 502", status_code=502)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestBackoffDelay:
    def test_doubles_per_attempt(self) -> None:
        assert [backoff_delay(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_scales_with_base(self) -> None:
        assert backoff_delay(2, base=0.5) == 2.0


@pytest.mark.asyncio
class TestWithRetry:
    async def test_first_attempt_success(self) -> None:
        attempt = _Flaky(0)
        outcome = await with_retry(attempt, 3)
        assert outcome.value == "ok"
        assert outcome.retries == 0
        assert outcome.errors == 0
        assert attempt.calls == 1

    async def test_recovers_after_failures(self) -> None:
        attempt = _Flaky(2)
        with patch("khoj_scraper.extraction.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            outcome = await with_retry(attempt, 3)
        assert outcome.value == "ok"
        assert outcome.retries == 2
        assert attempt.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]

    async def test_exhausts_after_max_retries_plus_one(self) -> None:
        attempt = _Flaky(100)
        with patch("khoj_scraper.extraction.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(RetriesExhausted) as exc_info:
                await with_retry(attempt, 2)

        assert attempt.calls == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, FetchFailure)
        assert exc_info.value.last_error is exc_info.value.__cause__
        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays == [2.0, 4.0]
        assert delays == sorted(delays)

    async def test_zero_retries_means_single_attempt(self) -> None:
        attempt = _Flaky(1)
        with pytest.raises(RetriesExhausted):
            await with_retry(attempt, 0)
        assert attempt.calls == 1

    @pytest.mark.parametrize(
        "error",
        [
            ExtractionFailure("bad selector"),
            PoolFailure("launch failed", fingerprint="k"),
        ],
    )
    async def test_all_library_failures_are_retried(self, error: Exception) -> None:
        attempt = _Flaky(1, error=error)
        outcome = await with_retry(attempt, 1, backoff_base=0)
        assert outcome.value == "ok"
        assert outcome.retries == 1

    async def test_non_library_error_not_retried(self) -> None:
        async def _broken() -> str:
            raise ZeroDivisionError

        with pytest.raises(ZeroDivisionError):
            await with_retry(_broken, 5, backoff_base=0)

    async def test_backoff_is_cancellable(self) -> None:
        attempt = _Flaky(100)
        task = asyncio.create_task(with_retry(attempt, 3, backoff_base=10))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert attempt.calls == 1

    async def test_negative_budget_rejected(self) -> None:
        with pytest.raises(ValueError):
            await with_retry(_Flaky(0), -1)

    async def test_elapsed_time_reported(self) -> None:
        outcome = await with_retry(_Flaky(1), 1, backoff_base=0.01)
        assert outcome.elapsed_ms >= 15
