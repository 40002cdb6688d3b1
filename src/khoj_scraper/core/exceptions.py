"""Exception hierarchy for the extraction orchestrator.

All custom exceptions subclass ``ScraperError`` so that callers can catch the
whole family with a single ``except`` clause.

Hierarchy::

    ScraperError
    ├── FetchFailure             (url, status_code)
    │   └── PoolFailure          (fingerprint)
    ├── ExtractionFailure        (selector)
    └── RetriesExhausted         (attempts, last_error)
"""

from __future__ import annotations


class ScraperError(Exception):
    """Base class for all khoj-scraper exceptions."""


# ---------------------------------------------------------------------------
# Per-attempt failures
# ---------------------------------------------------------------------------


class FetchFailure(ScraperError):
    """Raised when a single fetch attempt fails.

    Covers network errors, non-success HTTP statuses, binary responses and
    browser navigation timeouts.  Local to one strategy call: the engine
    selector may fall back to the next strategy, and the retry controller
    may try the whole attempt again.

    Args:
        message: Human-readable description of the failure.
        url: Target URL of the failed fetch.
        status_code: HTTP status code, or ``None`` if no response arrived.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PoolFailure(FetchFailure):
    """Raised when a browser process for a pool fingerprint cannot be launched.

    The pool clears the fingerprint's entry before raising so the next call
    attempts a fresh launch.  Treated as a :class:`FetchFailure` for retry
    purposes.
    """

    def __init__(self, message: str, fingerprint: str) -> None:
        super().__init__(message)
        self.fingerprint = fingerprint


class ExtractionFailure(ScraperError):
    """Raised when records cannot be built from a fetched document.

    Typically a malformed CSS selector.  Extraction is all-or-nothing, so
    this aborts the current attempt entirely.

    Args:
        message: Human-readable description of the failure.
        selector: The offending selector, when known.
    """

    def __init__(self, message: str, selector: str | None = None) -> None:
        super().__init__(message)
        self.selector = selector


# ---------------------------------------------------------------------------
# Terminal failure
# ---------------------------------------------------------------------------


class RetriesExhausted(ScraperError):
    """Raised once the retry controller has used its whole attempt budget.

    The last underlying failure is available both as ``last_error`` and as
    ``__cause__``.

    Args:
        attempts: Total number of attempts made.
        last_error: The failure raised by the final attempt.
    """

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"Extraction failed after {attempts} attempt(s): {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error
