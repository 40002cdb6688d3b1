"""Headless-browser fetch strategies (standard and stealth).

Both engines run Chromium through Playwright using a pooled browser process
(see :mod:`khoj_scraper.extraction.browser_pool`) and a fresh browsing context
per request.  The stealth engine uses its own pool fingerprint, always runs
headless, launches with extra anti-automation flags and applies the
``playwright-stealth`` patches to every context.

Per request::

    acquire pooled browser -> open context (cookies set) -> anti-bot delay
    -> goto(wait_until="networkidle") -> page.content() [-> screenshot]
    (everything after the delay runs under one deadline of ``timeout`` seconds)
    -> close context (always) -> extract records
"""

from __future__ import annotations

import asyncio
import base64
import logging
import random
from typing import Optional

from khoj_scraper.core.exceptions import FetchFailure
from khoj_scraper.extraction import antibot
from khoj_scraper.extraction.browser_pool import BrowserPool
from khoj_scraper.extraction.config import WAIT_UNTIL
from khoj_scraper.extraction.field_extractor import extract_records
from khoj_scraper.extraction.http_fetcher import FetchedPage, StrategyOutcome
from khoj_scraper.extraction.models import Engine, ExtractionRequest

logger = logging.getLogger(__name__)


class BrowserStrategy:
    """Render the page in a pooled browser, then extract fields.

    Args:
        pool: Browser pool shared by all requests of one extractor.
        stealth: Use the stealth engine instead of the standard one.
        default_timeout: Fetch deadline (seconds) when the request sets none.
        rng: Optional random generator for the anti-bot policy.
    """

    def __init__(
        self,
        pool: BrowserPool,
        *,
        stealth: bool = False,
        default_timeout: float = 30.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._pool = pool
        self._stealth = stealth
        self._default_timeout = default_timeout
        self._rng = rng
        self.kind = Engine.STEALTH_BROWSER if stealth else Engine.BROWSER
        self.name = self.kind.value

    async def fetch(self, request: ExtractionRequest) -> FetchedPage:
        """Navigate to the request URL and return the rendered document.

        Raises:
            FetchFailure: On navigation error or timeout.
            PoolFailure: If the browser cannot be launched.
        """
        options = request.options
        anti_bot = options.anti_bot_config
        timeout = options.timeout or self._default_timeout
        timeout_ms = int(timeout * 1000)

        user_agent = antibot.pick_user_agent(
            anti_bot.user_agents if anti_bot else None, rng=self._rng
        )
        proxy = antibot.playwright_proxy(antibot.pick_proxy(options.proxy_config, rng=self._rng))
        cookies = antibot.cookie_params(anti_bot.cookies if anti_bot else None, request.url)
        delay_ms = antibot.compute_delay(anti_bot.delays if anti_bot else None, rng=self._rng)

        async with self._pool.session(
            self.kind,
            user_agent=user_agent,
            proxy=proxy,
            cookies=cookies,
            stealth=self._stealth or options.stealth,
        ) as context:
            await antibot.apply_delay(delay_ms)
            try:
                async with asyncio.timeout(timeout):
                    page = await context.new_page()
                    response = await page.goto(request.url, timeout=timeout_ms, wait_until=WAIT_UNTIL)
                    html = await page.content()
                    screenshot: Optional[str] = None
                    if options.screenshot:
                        png = await page.screenshot(full_page=True, type="png")
                        screenshot = base64.b64encode(png).decode("ascii")
            except TimeoutError as exc:
                logger.warning("playwright_fetcher: %s timed out after %ss for %s", self.name, timeout, request.url)
                raise FetchFailure(f"{self.name} timeout after {timeout}s", url=request.url) from exc
            except Exception as exc:  # noqa: BLE001
                logger.warning("playwright_fetcher: %s navigation failed for %s: %s", self.name, request.url, exc)
                raise FetchFailure(f"{self.name} navigation failed: {exc}", url=request.url) from exc

            return FetchedPage(
                html=html,
                status_code=response.status if response else None,
                final_url=page.url,
                screenshot_base64=screenshot,
            )

    async def run(self, request: ExtractionRequest) -> StrategyOutcome:
        page = await self.fetch(request)
        records = extract_records(page.html, request.selector_spec)
        logger.info(
            "playwright_fetcher: %s rendered %s, %d record(s)",
            self.name,
            request.url,
            len(records),
        )
        return StrategyOutcome(
            records=records,
            engine_used=self.name,
            screenshot_base64=page.screenshot_base64,
        )
