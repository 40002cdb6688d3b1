"""Constants and tuning parameters for the extraction orchestrator."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# User agents
# ---------------------------------------------------------------------------

#: Built-in desktop user agents used when a request configures none.
#: Covers two browser families on two platforms.
DEFAULT_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:124.0) Gecko/20100101 Firefox/124.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:124.0) Gecko/20100101 Firefox/124.0",
)

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: Content-Type prefixes that indicate binary resources with no HTML to parse.
BINARY_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/zip",
        "application/octet-stream",
        "application/vnd.",
        "image/",
        "video/",
        "audio/",
        "font/",
    }
)

# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------

#: Chromium flags for restricted deployment environments (containers without
#: user namespaces, small /dev/shm).
BROWSER_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
)

#: Extra flags for the stealth engine.
STEALTH_LAUNCH_ARGS: tuple[str, ...] = (
    "--disable-gpu",
    "--no-first-run",
    "--disable-accelerated-2d-canvas",
    "--disable-blink-features=AutomationControlled",
)

#: Viewport of every browsing context.
VIEWPORT: dict[str, int] = {"width": 1920, "height": 1080}

#: Playwright load state awaited after navigation.
WAIT_UNTIL: str = "networkidle"

# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

#: Container selector used when a selector spec does not name one.
DEFAULT_CONTAINER: str = "body"

#: Separator between a CSS selector and an attribute name in a field selector.
ATTRIBUTE_SEPARATOR: str = "@"
