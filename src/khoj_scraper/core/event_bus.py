"""Redis pub/sub publishing of scraper run notifications.

The WebSocket layer subscribes to one channel per scraper and forwards every
message to connected dashboard clients.  The extraction core never publishes
by itself; :func:`khoj_scraper.extraction.runner.run_scraper` calls the
helpers here around each call to ``extract``.

Channel naming convention::

    scraper:{scraper_id}

Message shapes::

    {"type": "run_started",   "scraperId": "...", "runId": "...", "data": {...}}
    {"type": "run_progress",  "scraperId": "...", "runId": "...", "progress": 50}
    {"type": "run_completed", "scraperId": "...", "runId": "...",
     "data": {"status": "completed", "itemsExtracted": 12, ...}}

Publishing is fire-and-forget: a failure is logged at WARNING and never
propagates to the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def channel_for(scraper_id: str) -> str:
    """Return the pub/sub channel name for ``scraper_id``."""
    return f"scraper:{scraper_id}"


def run_started_event(scraper_id: str, run_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"type": "run_started", "scraperId": scraper_id, "runId": run_id, "data": data}


def run_progress_event(scraper_id: str, run_id: str, progress: int) -> dict[str, Any]:
    """Build a ``run_progress`` payload.  ``progress`` is clamped to 0..100."""
    return {
        "type": "run_progress",
        "scraperId": scraper_id,
        "runId": run_id,
        "progress": max(0, min(100, int(progress))),
    }


def run_completed_event(
    scraper_id: str,
    run_id: str,
    status: str,
    summary: dict[str, Any],
) -> dict[str, Any]:
    return {
        "type": "run_completed",
        "scraperId": scraper_id,
        "runId": run_id,
        "data": {"status": status, **summary},
    }


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


async def publish_event(redis_url: Optional[str], scraper_id: str, payload: dict[str, Any]) -> None:
    """Publish ``payload`` on the scraper's channel.

    When ``redis_url`` is ``None`` the event is only logged at DEBUG.  Opens a
    short-lived connection per message and always closes it.

    Args:
        redis_url: Redis connection URL, or ``None`` to skip publishing.
        scraper_id: Scraper identifier used to derive the channel.
        payload: One of the dicts built by the ``*_event`` helpers.
    """
    channel = channel_for(scraper_id)
    if redis_url is None:
        logger.debug("event_bus: no redis configured, dropping %s on %s", payload.get("type"), channel)
        return

    try:
        import redis.asyncio as aioredis  # noqa: PLC0415

        r = aioredis.from_url(redis_url, decode_responses=True)
        try:
            await r.publish(channel, json.dumps(payload))
            logger.debug("event_bus: published %s on %s", payload.get("type"), channel)
        finally:
            await r.aclose()
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "event_bus: failed to publish %s on %s: %s",
            payload.get("type"),
            channel,
            exc,
        )
