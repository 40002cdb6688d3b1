"""Engine selection as an ordered cascade of fetch strategies.

The cascade for a request is a short list of :class:`CascadeStep` objects,
each pairing a strategy with an ``accept`` predicate.  Steps run in order;
the first outcome its step accepts is returned.

===================  =====================================================
engine               cascade
===================  =====================================================
``http``             http (accept anything, even zero records)
``auto``             http (accept if >= 1 record) -> browser
``browser``          browser
``stealth-browser``  stealth browser
===================  =====================================================

A :class:`FetchFailure` from a step that is not the last is logged, counted
and the cascade moves on; a failure from the last step propagates to the
retry controller.  Errors outside the library hierarchy are wrapped as
:class:`ExtractionFailure`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from khoj_scraper.core.exceptions import ExtractionFailure, FetchFailure, ScraperError
from khoj_scraper.extraction.http_fetcher import StrategyOutcome
from khoj_scraper.extraction.models import Engine, ExtractionRequest

logger = logging.getLogger(__name__)


class FetchStrategy(Protocol):
    name: str

    async def run(self, request: ExtractionRequest) -> StrategyOutcome: ...


AcceptPredicate = Callable[[StrategyOutcome, ExtractionRequest], bool]


def accept_always(outcome: StrategyOutcome, request: ExtractionRequest) -> bool:  # noqa: ARG001
    return True


def accept_if_records(outcome: StrategyOutcome, request: ExtractionRequest) -> bool:  # noqa: ARG001
    return bool(outcome.records)


@dataclass(frozen=True)
class CascadeStep:
    """One strategy in the cascade and the predicate that stops the cascade."""

    strategy: FetchStrategy
    accept: AcceptPredicate = accept_always

    @property
    def name(self) -> str:
        return self.strategy.name


def build_cascade(
    engine: Engine,
    *,
    http: FetchStrategy,
    browser: FetchStrategy,
    stealth: FetchStrategy,
) -> list[CascadeStep]:
    """Return the ordered steps for ``engine``."""
    if engine is Engine.HTTP:
        return [CascadeStep(http, accept_always)]
    if engine is Engine.AUTO:
        return [CascadeStep(http, accept_if_records), CascadeStep(browser, accept_always)]
    if engine is Engine.STEALTH_BROWSER:
        return [CascadeStep(stealth, accept_always)]
    if engine is Engine.BROWSER:
        return [CascadeStep(browser, accept_always)]
    raise ValueError(f"unsupported engine: {engine!r}")


class EngineSelector:
    """Runs one extraction attempt through the cascade for its engine."""

    def __init__(
        self,
        *,
        http: FetchStrategy,
        browser: FetchStrategy,
        stealth: FetchStrategy,
    ) -> None:
        self._http = http
        self._browser = browser
        self._stealth = stealth

    def cascade_for(self, engine: Engine) -> list[CascadeStep]:
        return build_cascade(engine, http=self._http, browser=self._browser, stealth=self._stealth)

    async def select(self, request: ExtractionRequest) -> StrategyOutcome:
        """Run a single attempt (no retries).

        Raises:
            FetchFailure: From the last cascade step.
            ExtractionFailure: On selector errors or unexpected strategy errors.
        """
        steps = self.cascade_for(request.options.engine)
        absorbed = 0

        for index, step in enumerate(steps):
            is_last = index == len(steps) - 1
            try:
                outcome = await step.strategy.run(request)
            except FetchFailure as exc:
                if is_last:
                    raise
                absorbed += 1
                logger.info(
                    "engine_selector: %s failed for %s (%s), falling back to %s",
                    step.name,
                    request.url,
                    exc,
                    steps[index + 1].name,
                )
                continue
            except ScraperError:
                raise
            except Exception as exc:  # noqa: BLE001
                raise ExtractionFailure(f"{step.name} strategy error: {exc}") from exc

            if is_last or step.accept(outcome, request):
                outcome.error_count += absorbed
                return outcome

            logger.info(
                "engine_selector: %s yielded no records for %s, falling back to %s",
                step.name,
                request.url,
                steps[index + 1].name,
            )

        # Unreachable: the last step either returns or raises.
        raise ExtractionFailure(f"empty cascade for engine {request.options.engine.value}")
