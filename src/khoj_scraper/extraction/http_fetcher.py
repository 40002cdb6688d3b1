"""Plain HTTP fetch strategy.

Uses ``httpx`` for a single GET per attempt with the anti-bot user agent,
cookies, proxy and delay applied.  Any network error, timeout, redirect loop,
non-2xx status or binary response raises
:class:`~khoj_scraper.core.exceptions.FetchFailure`; there is no partial
result.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Optional

import httpx

from khoj_scraper.core.exceptions import FetchFailure
from khoj_scraper.extraction import antibot
from khoj_scraper.extraction.config import BINARY_CONTENT_TYPES
from khoj_scraper.extraction.field_extractor import extract_records
from khoj_scraper.extraction.models import Engine, ExtractionRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------


@dataclass
class FetchedPage:
    """A document obtained by one fetch.

    Attributes:
        html: Raw (HTTP) or rendered (browser) document source.
        status_code: HTTP status of the main response, if known.
        final_url: URL after redirects.
        screenshot_base64: Base64 PNG of the full page, browser engines only.
    """

    html: str
    status_code: Optional[int]
    final_url: str
    screenshot_base64: Optional[str] = None


@dataclass
class StrategyOutcome:
    """Records produced by one strategy run.

    Attributes:
        records: Extracted records.
        engine_used: ``"http"``, ``"browser"`` or ``"stealth-browser"``.
        screenshot_base64: Screenshot when one was requested and taken.
        error_count: Failures absorbed while producing this outcome (set by
            the engine selector when an earlier cascade step failed).
    """

    records: list[dict[str, str]]
    engine_used: str
    screenshot_base64: Optional[str] = None
    error_count: int = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_binary_content_type(content_type: str) -> bool:
    """Return ``True`` if the Content-Type indicates a non-text binary resource."""
    ct = content_type.lower().split(";")[0].strip()
    return any(ct.startswith(prefix) for prefix in BINARY_CONTENT_TYPES)


# ---------------------------------------------------------------------------
# Public fetch function
# ---------------------------------------------------------------------------


async def fetch_html(
    url: str,
    *,
    user_agent: str,
    timeout: float,
    proxy: Optional[str] = None,
    cookies: Optional[dict[str, str]] = None,
    max_redirects: int = 5,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FetchedPage:
    """Fetch ``url`` and return its body text.

    Args:
        url: Target URL.
        user_agent: ``User-Agent`` header value.
        timeout: Deadline for the whole request, redirects included, in
            seconds.  Also passed to httpx as its per-phase timeout.
        proxy: Optional proxy URI.
        cookies: Cookies sent with the request.
        max_redirects: Redirect hops followed before failing.
        transport: Optional transport override (tests).

    Returns:
        A :class:`FetchedPage`.

    Raises:
        FetchFailure: On timeout, redirect loop, network error, non-2xx
            status or binary content type.
    """
    async with httpx.AsyncClient(
        proxy=proxy,
        cookies=cookies,
        timeout=timeout,
        follow_redirects=True,
        max_redirects=max_redirects,
        transport=transport,
        headers={"User-Agent": user_agent},
    ) as client:
        try:
            async with asyncio.timeout(timeout):
                response = await client.get(url)
        except (httpx.TimeoutException, TimeoutError) as exc:
            logger.warning("http_fetcher: timeout fetching %s", url)
            raise FetchFailure(f"timeout after {timeout}s", url=url) from exc
        except httpx.TooManyRedirects as exc:
            logger.warning("http_fetcher: too many redirects for %s", url)
            raise FetchFailure("too many redirects", url=url) from exc
        except httpx.RequestError as exc:
            logger.warning("http_fetcher: request error for %s: %s", url, exc)
            raise FetchFailure(f"request error: {exc}", url=url) from exc

    final_url = str(response.url)

    if not response.is_success:
        logger.info("http_fetcher: HTTP %d for %s", response.status_code, url)
        raise FetchFailure(
            f"HTTP {response.status_code}", url=url, status_code=response.status_code
        )

    content_type = response.headers.get("content-type", "")
    if _is_binary_content_type(content_type):
        logger.info("http_fetcher: binary content-type '%s' for %s", content_type, url)
        raise FetchFailure(
            f"binary content-type: {content_type}",
            url=url,
            status_code=response.status_code,
        )

    return FetchedPage(
        html=response.text,
        status_code=response.status_code,
        final_url=final_url,
    )


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class HttpStrategy:
    """Cheap strategy: one HTTP GET, then field extraction on the raw HTML."""

    name = Engine.HTTP.value

    def __init__(
        self,
        *,
        default_timeout: float = 15.0,
        max_redirects: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._default_timeout = default_timeout
        self._max_redirects = max_redirects
        self._transport = transport
        self._rng = rng

    async def run(self, request: ExtractionRequest) -> StrategyOutcome:
        options = request.options
        anti_bot = options.anti_bot_config

        user_agent = antibot.pick_user_agent(
            anti_bot.user_agents if anti_bot else None, rng=self._rng
        )
        proxy = antibot.pick_proxy(options.proxy_config, rng=self._rng)
        delay_ms = antibot.compute_delay(anti_bot.delays if anti_bot else None, rng=self._rng)
        await antibot.apply_delay(delay_ms)

        page = await fetch_html(
            request.url,
            user_agent=user_agent,
            timeout=options.timeout or self._default_timeout,
            proxy=proxy,
            cookies=anti_bot.cookies if anti_bot else None,
            max_redirects=self._max_redirects,
            transport=self._transport,
        )
        records = extract_records(page.html, request.selector_spec)
        logger.info(
            "http_fetcher: %s -> HTTP %s, %d record(s)",
            request.url,
            page.status_code,
            len(records),
        )
        return StrategyOutcome(records=records, engine_used=self.name)
