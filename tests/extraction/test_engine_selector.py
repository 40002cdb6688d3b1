"""Unit tests for the engine cascade.

The cascade policy is tested on its own with scripted stub strategies; no
fetching happens here.
"""

from __future__ import annotations

from typing import Optional

import pytest

from khoj_scraper.core.exceptions import ExtractionFailure, FetchFailure, PoolFailure
from khoj_scraper.extraction.engine_selector import (
    EngineSelector,
    accept_always,
    accept_if_records,
    build_cascade,
)
from khoj_scraper.extraction.http_fetcher import StrategyOutcome
from khoj_scraper.extraction.models import Engine, ExtractionRequest


class StubStrategy:
    """Returns ``records`` (or raises ``error``) and counts its calls."""

    def __init__(
        self,
        name: str,
        records: Optional[list[dict[str, str]]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self.name = name
        self.records = records or []
        self.error = error
        self.calls = 0

    async def run(self, request: ExtractionRequest) -> StrategyOutcome:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return StrategyOutcome(records=list(self.records), engine_used=self.name)


def _request(engine: str) -> ExtractionRequest:
    return ExtractionRequest.model_validate(
        {
            "url": "https://example.com/",
            "selectorSpec": {"fields": {"t": "h1"}},
            "options": {"engine": engine},
        }
    )


def _selector(http: StubStrategy, browser: StubStrategy, stealth: StubStrategy) -> EngineSelector:
    return EngineSelector(http=http, browser=browser, stealth=stealth)


_RECORD = [{"t": "hello"}]


# ---------------------------------------------------------------------------
# build_cascade
# ---------------------------------------------------------------------------


class TestBuildCascade:
    def setup_method(self) -> None:
        self.http = StubStrategy("http")
        self.browser = StubStrategy("browser")
        self.stealth = StubStrategy("stealth-browser")

    def _names(self, engine: Engine) -> list[str]:
        steps = build_cascade(engine, http=self.http, browser=self.browser, stealth=self.stealth)
        return [step.name for step in steps]

    def test_http_only(self) -> None:
        assert self._names(Engine.HTTP) == ["http"]

    def test_auto_tries_http_then_browser(self) -> None:
        assert self._names(Engine.AUTO) == ["http", "browser"]

    def test_browser(self) -> None:
        assert self._names(Engine.BROWSER) == ["browser"]

    def test_stealth(self) -> None:
        assert self._names(Engine.STEALTH_BROWSER) == ["stealth-browser"]

    def test_auto_http_step_requires_records(self) -> None:
        steps = build_cascade(Engine.AUTO, http=self.http, browser=self.browser, stealth=self.stealth)
        assert steps[0].accept is accept_if_records
        assert steps[1].accept is accept_always


# ---------------------------------------------------------------------------
# EngineSelector.select
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestSelect:
    async def test_auto_stops_at_http_with_records(self) -> None:
        http, browser, stealth = StubStrategy("http", _RECORD), StubStrategy("browser"), StubStrategy("stealth-browser")
        outcome = await _selector(http, browser, stealth).select(_request("auto"))
        assert outcome.engine_used == "http"
        assert browser.calls == 0

    async def test_auto_falls_back_exactly_once_on_zero_records(self) -> None:
        http, browser, stealth = StubStrategy("http"), StubStrategy("browser", _RECORD), StubStrategy("stealth-browser")
        outcome = await _selector(http, browser, stealth).select(_request("auto"))
        assert outcome.engine_used == "browser"
        assert outcome.records == _RECORD
        assert http.calls == 1
        assert browser.calls == 1
        assert stealth.calls == 0
        assert outcome.error_count == 0

    async def test_auto_returns_empty_browser_result(self) -> None:
        http, browser, stealth = StubStrategy("http"), StubStrategy("browser"), StubStrategy("stealth-browser")
        outcome = await _selector(http, browser, stealth).select(_request("auto"))
        assert outcome.engine_used == "browser"
        assert outcome.records == []

    async def test_auto_falls_back_on_http_failure(self) -> None:
        http = StubStrategy("http", error=FetchFailure("HTTP 403", status_code=403))
        browser, stealth = StubStrategy("browser", _RECORD), StubStrategy("stealth-browser")
        outcome = await _selector(http, browser, stealth).select(_request("auto"))
        assert outcome.engine_used == "browser"
        assert outcome.error_count == 1

    async def test_explicit_http_never_uses_browser(self) -> None:
        http, browser, stealth = StubStrategy("http"), StubStrategy("browser", _RECORD), StubStrategy("stealth-browser", _RECORD)
        outcome = await _selector(http, browser, stealth).select(_request("http"))
        assert outcome.engine_used == "http"
        assert outcome.records == []
        assert browser.calls == 0
        assert stealth.calls == 0

    async def test_explicit_http_failure_propagates(self) -> None:
        http = StubStrategy("http", error=FetchFailure("timeout"))
        browser, stealth = StubStrategy("browser", _RECORD), StubStrategy("stealth-browser")
        with pytest.raises(FetchFailure):
            await _selector(http, browser, stealth).select(_request("http"))
        assert browser.calls == 0

    async def test_stealth_routes_to_stealth_engine(self) -> None:
        http, browser, stealth = StubStrategy("http", _RECORD), StubStrategy("browser"), StubStrategy("stealth-browser", _RECORD)
        outcome = await _selector(http, browser, stealth).select(_request("stealth-browser"))
        assert outcome.engine_used == "stealth-browser"
        assert http.calls == 0
        assert browser.calls == 0

    async def test_browser_skips_http(self) -> None:
        http, browser, stealth = StubStrategy("http", _RECORD), StubStrategy("browser"), StubStrategy("stealth-browser")
        await _selector(http, browser, stealth).select(_request("browser"))
        assert http.calls == 0
        assert browser.calls == 1

    async def test_last_step_failure_propagates(self) -> None:
        http = StubStrategy("http")
        browser = StubStrategy("browser", error=PoolFailure("launch failed", fingerprint="abc"))
        with pytest.raises(PoolFailure):
            await _selector(http, browser, StubStrategy("stealth-browser")).select(_request("auto"))

    async def test_extraction_failure_not_masked_by_fallback(self) -> None:
        http = StubStrategy("http", error=ExtractionFailure("invalid selector", selector="h1[["))
        browser = StubStrategy("browser", _RECORD)
        with pytest.raises(ExtractionFailure):
            await _selector(http, browser, StubStrategy("stealth-browser")).select(_request("auto"))
        assert browser.calls == 0

    async def test_unexpected_error_wrapped(self) -> None:
        browser = StubStrategy("browser", error=KeyError("boom"))
        with pytest.raises(ExtractionFailure) as exc_info:
            await _selector(StubStrategy("http"), browser, StubStrategy("stealth-browser")).select(
                _request("browser")
            )
        assert isinstance(exc_info.value.__cause__, KeyError)
