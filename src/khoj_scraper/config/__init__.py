"""Configuration package for khoj-scraper.

Re-exports the settings symbols so that callers can write::

    from khoj_scraper.config import get_settings
"""

from __future__ import annotations

from khoj_scraper.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
