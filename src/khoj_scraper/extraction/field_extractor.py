"""CSS-selector driven field extraction.

Turns a parsed document plus a :class:`~khoj_scraper.extraction.models.SelectorSpec`
into a list of flat records.  Pure: no I/O and no hidden state, so the same
document and spec always give the same records.

For every element matching ``container`` one record is built:

- ``"css"`` fields read the normalised text of the first descendant matching
  ``css``; ``"css@attr"`` fields read attribute ``attr`` of that descendant.
- When the container-scoped lookup comes back empty the same lookup is
  repeated against the whole document.
- Records whose fields are all empty are dropped.

Selector evaluation uses BeautifulSoup's ``select`` (soupsieve).  A malformed
selector fails the whole call with
:class:`~khoj_scraper.core.exceptions.ExtractionFailure`.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from khoj_scraper.core.exceptions import ExtractionFailure
from khoj_scraper.extraction.config import DEFAULT_CONTAINER
from khoj_scraper.extraction.models import SelectorSpec, split_field_selector

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Collapse internal whitespace runs and trim both ends."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_document(html: str) -> BeautifulSoup:
    """Parse raw HTML with the stdlib-backed ``html.parser`` tree builder."""
    return BeautifulSoup(html, "html.parser")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def _select_one(scope: Tag, css: str) -> Optional[Tag]:
    try:
        return scope.select_one(css)
    except (SelectorSyntaxError, ValueError) as exc:
        raise ExtractionFailure(f"invalid selector {css!r}: {exc}", selector=css) from exc


def _lookup(scope: Tag, css: str, attr: Optional[str]) -> str:
    """Return the text (or ``attr`` value) of the first match of ``css`` in ``scope``."""
    element = _select_one(scope, css)
    if element is None:
        return ""
    if attr is None:
        return normalize_text(element.get_text())
    value = element.get(attr)
    if isinstance(value, list):
        # Multi-valued attributes such as ``class`` come back as lists.
        value = " ".join(value)
    return (value or "").strip()


def _resolve_field(container: Tag, document: BeautifulSoup, selector: str) -> str:
    css, attr = split_field_selector(selector)
    value = _lookup(container, css, attr)
    if not value:
        value = _lookup(document, css, attr)
    return value


# ---------------------------------------------------------------------------
# Public extraction function
# ---------------------------------------------------------------------------


def extract_records(
    document: BeautifulSoup | str,
    selector_spec: SelectorSpec,
) -> list[dict[str, str]]:
    """Build one record per container element and drop the empty ones.

    Args:
        document: Parsed document, or raw HTML which is parsed first.
        selector_spec: Container selector and per-field selectors.

    Returns:
        Records in document order.  Each record maps every field name in
        ``selector_spec.fields`` to a string (possibly empty).

    Raises:
        ExtractionFailure: If any selector is malformed.
    """
    if isinstance(document, str):
        document = parse_document(document)

    try:
        containers = document.select(selector_spec.container)
    except (SelectorSyntaxError, ValueError) as exc:
        raise ExtractionFailure(
            f"invalid container selector {selector_spec.container!r}: {exc}",
            selector=selector_spec.container,
        ) from exc
    if not containers and selector_spec.container == DEFAULT_CONTAINER:
        # Fragments parsed without a <body> still count as one container.
        containers = [document]

    records: list[dict[str, str]] = []
    for container in containers:
        record = {
            name: _resolve_field(container, document, selector)
            for name, selector in selector_spec.fields.items()
        }
        if any(record.values()):
            records.append(record)

    logger.debug(
        "extractor: %d container(s) matched %r, %d record(s) kept",
        len(containers),
        selector_spec.container,
        len(records),
    )
    return records
