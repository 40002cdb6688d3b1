"""Entry point of the extraction core.

Composes the retry controller, the engine cascade, the fetch strategies and
the browser pool into a single call::

    async with Extractor() as extractor:
        result = await extractor.extract(
            "https://shop.example.com/widgets",
            {"container": ".item", "fields": {"title": "h2", "price": ".price"}},
            {"engine": "auto", "maxRetries": 2},
        )

The browser pool is injected (or created and owned by the extractor) rather
than held in a module-level global, so several extractors with different
pool settings can coexist in one process.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Mapping, Optional, Union

from khoj_scraper.config.settings import Settings, get_settings
from khoj_scraper.extraction.browser_pool import BrowserPool
from khoj_scraper.extraction.engine_selector import EngineSelector, FetchStrategy
from khoj_scraper.extraction.http_fetcher import HttpStrategy, StrategyOutcome
from khoj_scraper.extraction.models import (
    ExtractionMetadata,
    ExtractionOptions,
    ExtractionRequest,
    ExtractionResult,
    SelectorSpec,
)
from khoj_scraper.extraction.playwright_fetcher import BrowserStrategy
from khoj_scraper.extraction.retry import with_retry

logger = logging.getLogger(__name__)

SelectorSpecLike = Union[SelectorSpec, Mapping[str, Any]]
OptionsLike = Union[ExtractionOptions, Mapping[str, Any], None]


class Extractor:
    """Extraction orchestrator.

    Args:
        pool: Browser pool to use; a new one is created when omitted.
            :meth:`shutdown_all` closes it either way.
        settings: Service settings; defaults to :func:`get_settings`.
        http_strategy: Override for the HTTP strategy.
        browser_strategy: Override for the standard browser strategy.
        stealth_strategy: Override for the stealth browser strategy.
        rng: Random generator shared by the default strategies.
    """

    def __init__(
        self,
        pool: Optional[BrowserPool] = None,
        *,
        settings: Optional[Settings] = None,
        http_strategy: Optional[FetchStrategy] = None,
        browser_strategy: Optional[FetchStrategy] = None,
        stealth_strategy: Optional[FetchStrategy] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.pool = pool or BrowserPool(headless=self.settings.playwright_headless)

        self._selector = EngineSelector(
            http=http_strategy
            or HttpStrategy(
                default_timeout=self.settings.http_timeout_seconds,
                max_redirects=self.settings.max_redirects,
                rng=rng,
            ),
            browser=browser_strategy
            or BrowserStrategy(
                self.pool,
                default_timeout=self.settings.browser_timeout_seconds,
                rng=rng,
            ),
            stealth=stealth_strategy
            or BrowserStrategy(
                self.pool,
                stealth=True,
                default_timeout=self.settings.browser_timeout_seconds,
                rng=rng,
            ),
        )

    async def __aenter__(self) -> "Extractor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown_all()

    @staticmethod
    def build_request(
        url: str,
        selector_spec: SelectorSpecLike,
        options: OptionsLike = None,
    ) -> ExtractionRequest:
        """Validate raw inputs into an :class:`ExtractionRequest`.

        Raises:
            pydantic.ValidationError: On an unknown engine, malformed option
                block, empty field selector or non-http(s) URL.
        """
        spec = (
            selector_spec
            if isinstance(selector_spec, SelectorSpec)
            else SelectorSpec.model_validate(dict(selector_spec))
        )
        if options is None:
            opts = ExtractionOptions()
        elif isinstance(options, ExtractionOptions):
            opts = options
        else:
            opts = ExtractionOptions.model_validate(dict(options))
        return ExtractionRequest(url=url, selector_spec=spec, options=opts)

    async def extract(
        self,
        url: str,
        selector_spec: SelectorSpecLike,
        options: OptionsLike = None,
    ) -> ExtractionResult:
        """Fetch ``url``, extract records, and retry on failure.

        Returns:
            An :class:`ExtractionResult`; ``metadata.retry_count`` and
            ``metadata.execution_time_ms`` cover the whole call.

        Raises:
            RetriesExhausted: Once every attempt has failed.
            pydantic.ValidationError: On invalid inputs (before any fetch).
        """
        request = self.build_request(url, selector_spec, options)
        max_retries = (
            request.options.max_retries
            if request.options.max_retries is not None
            else self.settings.default_max_retries
        )

        logger.info(
            "orchestrator: extracting %s (engine=%s, max_retries=%d)",
            request.url,
            request.options.engine.value,
            max_retries,
        )

        async def _attempt() -> StrategyOutcome:
            return await self._selector.select(request)

        outcome = await with_retry(
            _attempt,
            max_retries,
            backoff_base=self.settings.retry_backoff_base_seconds,
            description=request.url,
        )
        strategy_outcome = outcome.value

        result = ExtractionResult(
            records=strategy_outcome.records,
            metadata=ExtractionMetadata(
                items_extracted=len(strategy_outcome.records),
                execution_time_ms=outcome.elapsed_ms,
                engine_used=strategy_outcome.engine_used,
                screenshot_base64=strategy_outcome.screenshot_base64,
                error_count=outcome.errors + strategy_outcome.error_count,
                retry_count=outcome.retries,
            ),
        )
        logger.info(
            "orchestrator: %s done via %s, %d record(s) in %dms (retries=%d)",
            request.url,
            result.metadata.engine_used,
            result.metadata.items_extracted,
            result.metadata.execution_time_ms,
            result.metadata.retry_count,
        )
        return result

    async def shutdown_all(self) -> None:
        """Release every pooled browser process."""
        await self.pool.shutdown_all()
