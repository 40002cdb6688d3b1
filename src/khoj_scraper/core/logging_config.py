"""Structured logging configuration using structlog.

Call ``configure_logging()`` once at process startup (the CLI does this).
Modules log through the stdlib API and the records are rendered by structlog::

    import logging
    logger = logging.getLogger(__name__)
    logger.info("extractor: fetched %s", url)

A ``run_id`` context variable can be set by the caller around an extraction
run and is merged into every log record emitted while it is set.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

# ---------------------------------------------------------------------------
# Context variable
# ---------------------------------------------------------------------------

run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
"""Scraper run ID propagated from the job runner to log processors.

Usage::

    from khoj_scraper.core.logging_config import run_id_var
    token = run_id_var.set(run_id)
    try:
        ...
    finally:
        run_id_var.reset(token)
"""


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


_SECRET_SUBSTRINGS: frozenset[str] = frozenset({
    "password",
    "secret",
    "token",
    "authorization",
    "cookie",
    "proxy",
    "api_key",
})
"""Lower-cased substrings identifying event-dict keys whose values are redacted.

Proxy URIs routinely embed credentials and cookies may carry session tokens,
so both are masked along with the usual secrets."""


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Replace values of secret-bearing keys with a redaction marker.

    Scans top-level keys and one level of nested ``dict`` values.
    """
    redacted = "[REDACTED]"
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        if any(secret in key_lower for secret in _SECRET_SUBSTRINGS):
            event_dict[key] = redacted
            continue
        val = event_dict[key]
        if isinstance(val, dict):
            for nested_key in list(val.keys()):
                if any(secret in str(nested_key).lower() for secret in _SECRET_SUBSTRINGS):
                    val[nested_key] = redacted
    return event_dict


def _inject_run_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Add the current run ID to the event dict if one is set."""
    rid = run_id_var.get()
    if rid is not None and "run_id" not in event_dict:
        event_dict["run_id"] = rid
    return event_dict


# ---------------------------------------------------------------------------
# Public configuration entry-point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog with JSON output, or coloured console output in DEBUG.

    Standard fields on every record: ``timestamp`` (ISO 8601), ``level``,
    ``logger``, ``event`` and, when set, ``run_id``.

    Idempotent: the root handler list is replaced on each call.

    Args:
        log_level: One of ``"DEBUG"``, ``"INFO"``, ``"WARNING"``, ``"ERROR"``,
            ``"CRITICAL"``.  Case-insensitive.
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_run_id,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_development:
        final_renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=True,
        )
    else:
        final_renderer = structlog.processors.JSONRenderer()

    # Route ``logging.getLogger(__name__)`` records through structlog.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # Silence noisy libraries unless we are in DEBUG mode.
    if not is_development:
        for noisy_logger in ("httpx", "httpcore", "asyncio"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
