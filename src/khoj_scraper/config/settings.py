"""Service settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.  Every
variable is read with the ``KHOJ_`` prefix, e.g. ``KHOJ_LOG_LEVEL=DEBUG``.

Usage::

    from khoj_scraper.config.settings import get_settings

    settings = get_settings()
    headless = settings.playwright_headless
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Extraction service configuration backed by the environment and an optional .env file.

    All fields have defaults so the orchestrator can be embedded in tests and
    scripts without any environment set up.
    """

    model_config = SettingsConfigDict(
        env_prefix="KHOJ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    # ------------------------------------------------------------------
    # Browser engines
    # ------------------------------------------------------------------

    playwright_headless: bool = True
    """Run the standard browser engine headless.  The stealth engine is always
    headless regardless of this flag."""

    # ------------------------------------------------------------------
    # Timeouts and retries
    # ------------------------------------------------------------------

    http_timeout_seconds: float = Field(default=15.0, gt=0)
    """Fetch timeout for the HTTP strategy when a request does not set one."""

    browser_timeout_seconds: float = Field(default=30.0, gt=0)
    """Navigation timeout for the browser strategies when a request does not set one."""

    default_max_retries: int = Field(default=3, ge=0)
    """Retries granted to a request that does not specify ``max_retries``."""

    retry_backoff_base_seconds: float = Field(default=1.0, ge=0)
    """Base of the exponential backoff; retry ``n`` waits ``base * 2**n`` seconds."""

    max_redirects: int = Field(default=5, ge=0)
    """Redirect hops the HTTP strategy follows before failing."""

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    redis_url: Optional[str] = None
    """Redis URL for run notifications.  When unset, notifications are only logged."""


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings singleton.

    In tests, call ``get_settings.cache_clear()`` after patching environment
    variables.
    """
    return Settings()
