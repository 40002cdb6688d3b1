"""Shared pytest fixtures for khoj-scraper tests.

Fixture summary
---------------
settings        - Settings with zero retry backoff so retry tests run instantly.
fake_launcher   - Stand-in for Playwright's ``chromium.launch`` returning
                  in-memory fake browsers.
pool            - BrowserPool wired to ``fake_launcher``.

The fake Playwright objects record every call so tests can assert ordering
(cookies before navigation, context closed on failure, one context per
request).  No real browser or network is used anywhere in the suite; HTTP is
mocked with ``respx``.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Optional

import pytest

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Keep a developer's .env or shell from leaking into the suite.

for _key in [k for k in os.environ if k.startswith("KHOJ_")]:
    del os.environ[_key]

from khoj_scraper.config.settings import Settings, get_settings  # noqa: E402
from khoj_scraper.extraction.browser_pool import BrowserPool  # noqa: E402
from khoj_scraper.extraction.models import Engine  # noqa: E402

get_settings.cache_clear()

DEFAULT_BODY = (
    '<div class="item"><h2>Widget</h2><span class="price">$10</span></div>'
)


# ---------------------------------------------------------------------------
# Fake Playwright objects
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status = status


class FakePage:
    """Renders the browser's body fragment plus the context's cookie jar."""

    def __init__(self, context: "FakeContext") -> None:
        self.context = context
        self.url = "about:blank"
        self.goto_calls: list[dict[str, Any]] = []

    async def goto(self, url: str, timeout: Optional[float] = None, wait_until: Optional[str] = None) -> FakeResponse:
        self.context.events.append("goto")
        self.goto_calls.append({"url": url, "timeout": timeout, "wait_until": wait_until})
        browser = self.context.browser
        if browser.navigation_delay:
            await asyncio.sleep(browser.navigation_delay)
        if browser.navigation_error is not None:
            raise browser.navigation_error
        self.url = url
        return FakeResponse(browser.status)

    async def content(self) -> str:
        if self.context.browser.content_delay:
            await asyncio.sleep(self.context.browser.content_delay)
        jar = "".join(
            f'<li class="cookie">{c["name"]}={c["value"]}</li>' for c in self.context.cookies
        )
        return f"<html><body>{self.context.browser.body}<ul id=\"jar\">{jar}</ul></body></html>"

    async def screenshot(self, full_page: bool = False, type: str = "png") -> bytes:  # noqa: A002
        self.context.events.append("screenshot")
        return b"\x89PNG-fake"


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: dict[str, Any]) -> None:
        self.browser = browser
        self.options = options
        self.cookies: list[dict[str, Any]] = []
        self.pages: list[FakePage] = []
        self.events: list[str] = []
        self.closed = False

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        self.events.append("add_cookies")
        self.cookies.extend(cookies)

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.events.append("close")
        self.closed = True


class FakeBrowser:
    def __init__(self, kind: Engine, headless: bool, body: str) -> None:
        self.kind = kind
        self.headless = headless
        self.body = body
        self.status = 200
        self.navigation_error: Optional[BaseException] = None
        self.navigation_delay: float = 0.0
        self.content_delay: float = 0.0
        self.contexts: list[FakeContext] = []
        self.connected = True
        self.closed = False

    async def new_context(self, **options: Any) -> FakeContext:
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    def is_connected(self) -> bool:
        return self.connected

    async def close(self) -> None:
        self.closed = True
        self.connected = False


class FakeLauncher:
    """Async callable with the ``BrowserPool`` launcher signature."""

    def __init__(self, body: str = DEFAULT_BODY) -> None:
        self.body = body
        self.browsers: list[FakeBrowser] = []
        self.failures_remaining = 0
        self.launch_delay = 0.0

    @property
    def launches(self) -> int:
        return len(self.browsers)

    async def __call__(self, kind: Engine, headless: bool) -> FakeBrowser:
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise RuntimeError("chromium failed to start")
        browser = FakeBrowser(kind, headless, self.body)
        self.browsers.append(browser)
        return browser


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        retry_backoff_base_seconds=0.0,
        http_timeout_seconds=5.0,
        browser_timeout_seconds=5.0,
    )


@pytest.fixture()
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture()
def pool(fake_launcher: FakeLauncher) -> BrowserPool:
    return BrowserPool(launcher=fake_launcher)
