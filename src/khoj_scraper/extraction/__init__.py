"""Extraction orchestrator.

Fetches a page with the cheapest engine that works, runs a CSS selector spec
against the document, and retries failed attempts with exponential backoff.

Sub-modules:
- ``config``             - constants (user agents, launch flags, viewport)
- ``models``             - pydantic request / options / result models
- ``field_extractor``    - BeautifulSoup-based record extraction
- ``antibot``            - user agent, delay, proxy and cookie policy
- ``http_fetcher``       - httpx strategy
- ``browser_pool``       - pooled Chromium processes, isolated contexts
- ``playwright_fetcher`` - standard and stealth browser strategies
- ``engine_selector``    - ordered strategy cascade
- ``retry``              - outer retry loop with backoff
- ``orchestrator``       - ``Extractor.extract`` entry point
- ``runner``             - run wrapper that emits run notifications
"""

from __future__ import annotations

from khoj_scraper.extraction.browser_pool import BrowserPool
from khoj_scraper.extraction.models import (
    AntiBotConfig,
    DelayRange,
    Engine,
    ExtractionMetadata,
    ExtractionOptions,
    ExtractionRequest,
    ExtractionResult,
    ProxyConfig,
    SelectorSpec,
)
from khoj_scraper.extraction.orchestrator import Extractor

__all__ = [
    "AntiBotConfig",
    "BrowserPool",
    "DelayRange",
    "Engine",
    "ExtractionMetadata",
    "ExtractionOptions",
    "ExtractionRequest",
    "ExtractionResult",
    "Extractor",
    "ProxyConfig",
    "SelectorSpec",
]
