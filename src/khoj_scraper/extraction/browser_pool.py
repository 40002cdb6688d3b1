"""Pooled Chromium processes with per-request isolated browsing contexts.

A :class:`BrowserPool` keeps one live browser per *fingerprint*, a hash of
``(engine kind, proxy enabled, stealth)``.  Requests sharing a fingerprint
share the process but every request gets its own ``BrowserContext``, so
cookies, storage and history never leak between concurrent requests.

Get-or-create is serialised per fingerprint with an ``asyncio.Lock``; misses
on different fingerprints launch in parallel.

The pool is an ordinary object owned by whoever builds the
:class:`~khoj_scraper.extraction.orchestrator.Extractor`; call
:meth:`BrowserPool.shutdown_all` on graceful shutdown.

Install Playwright and download the Chromium browser binary::

    pip install playwright
    playwright install chromium
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Optional

from khoj_scraper.core.exceptions import PoolFailure
from khoj_scraper.extraction.config import (
    BROWSER_LAUNCH_ARGS,
    STEALTH_LAUNCH_ARGS,
    VIEWPORT,
)
from khoj_scraper.extraction.models import Engine

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Playwright

logger = logging.getLogger(__name__)

#: ``launcher(kind, headless) -> Browser``; replaceable in tests.
Launcher = Callable[[Engine, bool], Awaitable["Browser"]]


def fingerprint(kind: Engine, proxy_enabled: bool, stealth: bool) -> str:
    """Return the pool key for a browser configuration.

    Deterministic: the same three values always give the same key.
    """
    canonical = json.dumps(
        {"engine": Engine(kind).value, "proxy": bool(proxy_enabled), "stealth": bool(stealth)},
        sort_keys=True,
    )
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


class BrowserPool:
    """Keyed cache of live browser processes.

    Args:
        headless: Headless mode for the standard engine.  The stealth engine
            always runs headless.
        launcher: Optional coroutine function used instead of Playwright to
            start a browser.
    """

    def __init__(self, *, headless: bool = True, launcher: Optional[Launcher] = None) -> None:
        self._headless = headless
        self._launcher = launcher
        self._browsers: dict[str, "Browser"] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._playwright: Optional["Playwright"] = None
        self._playwright_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._browsers)

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    async def _start_playwright(self) -> "Playwright":
        async with self._playwright_lock:
            if self._playwright is None:
                from playwright.async_api import async_playwright  # noqa: PLC0415

                self._playwright = await async_playwright().start()
            return self._playwright

    async def _launch(self, kind: Engine) -> "Browser":
        if kind is Engine.STEALTH_BROWSER:
            headless = True
            args = [*BROWSER_LAUNCH_ARGS, *STEALTH_LAUNCH_ARGS]
        else:
            headless = self._headless
            args = list(BROWSER_LAUNCH_ARGS)

        if self._launcher is not None:
            return await self._launcher(kind, headless)

        playwright = await self._start_playwright()
        return await playwright.chromium.launch(headless=headless, args=args)

    async def acquire(
        self,
        kind: Engine,
        *,
        proxy_enabled: bool = False,
        stealth: bool = False,
    ) -> "Browser":
        """Return the pooled browser for this configuration, launching it on a miss.

        A cached browser that has disconnected is replaced.

        Raises:
            PoolFailure: If the browser cannot be launched.  The pool entry is
                cleared first, so the next call tries a fresh launch.
        """
        key = fingerprint(kind, proxy_enabled, stealth)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            browser = self._browsers.get(key)
            if browser is not None and browser.is_connected():
                return browser
            if browser is not None:
                logger.info("browser_pool: browser %s disconnected, relaunching", key[:8])
                self._browsers.pop(key, None)

            try:
                browser = await self._launch(kind)
            except Exception as exc:  # noqa: BLE001
                self._browsers.pop(key, None)
                logger.warning("browser_pool: launch failed for %s: %s", key[:8], exc)
                raise PoolFailure(f"browser launch failed: {exc}", fingerprint=key) from exc

            self._browsers[key] = browser
            logger.info(
                "browser_pool: launched %s browser (fingerprint=%s, pooled=%d)",
                Engine(kind).value,
                key[:8],
                len(self._browsers),
            )
            return browser

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def new_session(
        self,
        browser: "Browser",
        *,
        user_agent: str,
        proxy: Optional[dict[str, str]] = None,
        cookies: Optional[list[dict[str, Any]]] = None,
        stealth: bool = False,
    ) -> "BrowserContext":
        """Open an isolated browsing context on ``browser``.

        Stealth patches and cookies are applied before the context is handed
        back, i.e. before any navigation.
        """
        context_kwargs: dict[str, Any] = {
            "user_agent": user_agent,
            "viewport": dict(VIEWPORT),
            "ignore_https_errors": True,
        }
        if proxy:
            context_kwargs["proxy"] = proxy
        context = await browser.new_context(**context_kwargs)
        try:
            if stealth:
                from playwright_stealth import Stealth  # noqa: PLC0415

                await Stealth().apply_stealth_async(context)
            if cookies:
                await context.add_cookies(cookies)
        except BaseException:
            await self.close_session(context)
            raise
        return context

    async def close_session(self, context: "BrowserContext") -> None:
        """Close a browsing context; close errors are logged, never raised."""
        try:
            await context.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("browser_pool: error closing context: %s", exc)

    @asynccontextmanager
    async def session(
        self,
        kind: Engine,
        *,
        user_agent: str,
        proxy: Optional[dict[str, str]] = None,
        cookies: Optional[list[dict[str, Any]]] = None,
        stealth: bool = False,
    ) -> AsyncIterator["BrowserContext"]:
        """Acquire the pooled browser and yield a fresh context, closing it on exit."""
        browser = await self.acquire(kind, proxy_enabled=proxy is not None, stealth=stealth)
        context = await self.new_session(
            browser,
            user_agent=user_agent,
            proxy=proxy,
            cookies=cookies,
            stealth=stealth,
        )
        try:
            yield context
        finally:
            await self.close_session(context)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown_all(self) -> None:
        """Close every pooled browser and stop the Playwright driver.

        Safe to call more than once.
        """
        browsers = list(self._browsers.values())
        self._browsers.clear()
        for browser in browsers:
            try:
                await browser.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("browser_pool: error closing browser: %s", exc)

        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            try:
                await playwright.stop()
            except Exception as exc:  # noqa: BLE001
                logger.warning("browser_pool: error stopping playwright: %s", exc)

        if browsers:
            logger.info("browser_pool: shut down %d browser(s)", len(browsers))
