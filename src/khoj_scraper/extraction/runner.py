"""Caller-side wrapper that runs one scraper execution and emits its events.

The extraction core only returns a result or raises.  The job-execution layer
is expected to announce the run around that call; :func:`run_scraper` does
exactly that so every caller emits the same three events:

1. ``run_started`` before the fetch,
2. ``run_progress`` at 0 and at 100,
3. ``run_completed`` with ``status`` ``"completed"`` or ``"failed"``.

The returned :class:`RunSummary` carries ``records`` and ``metadata`` exactly
as the storage layer attaches them to a run record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from khoj_scraper.core import event_bus
from khoj_scraper.core.exceptions import ScraperError
from khoj_scraper.core.logging_config import run_id_var
from khoj_scraper.extraction.orchestrator import Extractor, OptionsLike, SelectorSpecLike

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Outcome of one scraper run.

    Attributes:
        run_id: Run identifier.
        status: ``"completed"`` or ``"failed"``.
        records: Extracted records (empty on failure).
        metadata: ``ExtractionResult.metadata`` dumped with camelCase keys,
            or ``None`` on failure.
        error: Error message on failure.
    """

    run_id: str
    status: str
    records: list[dict[str, str]] = field(default_factory=list)
    metadata: Optional[dict[str, Any]] = None
    error: Optional[str] = None


async def run_scraper(
    extractor: Extractor,
    *,
    scraper_id: str,
    run_id: str,
    url: str,
    selector_spec: SelectorSpecLike,
    options: OptionsLike = None,
    redis_url: Optional[str] = None,
) -> RunSummary:
    """Run one extraction and publish ``run_started``/``run_progress``/``run_completed``.

    Library errors (including ``RetriesExhausted``) are converted into a
    failed :class:`RunSummary`; anything else propagates after the
    ``run_completed`` event has been published.

    Args:
        extractor: The orchestrator to use.
        scraper_id: Scraper identifier (channel key).
        run_id: Identifier of this run.
        url: Target URL.
        selector_spec: Selector spec (model or plain mapping).
        options: Extraction options (model, mapping, or ``None``).
        redis_url: Redis URL for notifications; defaults to the extractor's
            ``settings.redis_url``.
    """
    redis_url = redis_url if redis_url is not None else extractor.settings.redis_url
    token = run_id_var.set(run_id)
    try:
        await event_bus.publish_event(
            redis_url, scraper_id, event_bus.run_started_event(scraper_id, run_id, {"url": url})
        )
        await event_bus.publish_event(
            redis_url, scraper_id, event_bus.run_progress_event(scraper_id, run_id, 0)
        )

        try:
            result = await extractor.extract(url, selector_spec, options)
        except ScraperError as exc:
            logger.warning("runner: scraper %s run %s failed: %s", scraper_id, run_id, exc)
            await event_bus.publish_event(
                redis_url,
                scraper_id,
                event_bus.run_completed_event(scraper_id, run_id, "failed", {"error": str(exc)}),
            )
            return RunSummary(run_id=run_id, status="failed", error=str(exc))
        except Exception as exc:
            await event_bus.publish_event(
                redis_url,
                scraper_id,
                event_bus.run_completed_event(scraper_id, run_id, "failed", {"error": str(exc)}),
            )
            raise

        metadata = result.metadata.model_dump(by_alias=True)
        await event_bus.publish_event(
            redis_url, scraper_id, event_bus.run_progress_event(scraper_id, run_id, 100)
        )
        await event_bus.publish_event(
            redis_url,
            scraper_id,
            event_bus.run_completed_event(
                scraper_id,
                run_id,
                "completed",
                {
                    "itemsExtracted": result.metadata.items_extracted,
                    "executionTimeMs": result.metadata.execution_time_ms,
                    "engineUsed": result.metadata.engine_used,
                },
            ),
        )
        logger.info(
            "runner: scraper %s run %s completed with %d record(s)",
            scraper_id,
            run_id,
            result.metadata.items_extracted,
        )
        return RunSummary(
            run_id=run_id,
            status="completed",
            records=result.records,
            metadata=metadata,
        )
    finally:
        run_id_var.reset(token)
