"""
Batch orchestration — the spine of the forecast pipeline.

``BatchOrchestrator.run(tickers)`` walks the ticker list strictly in order,
one ticker at a time:

  Step 1 — Quote:     fetch_quote(symbol). ``QuoteUnavailable`` → log, skip.
  Step 2 — Assess:    with_retry(provider.assess ...). Cannot fail.
  Step 3 — Collect:   append the TickerResult.
  Step 4 — Throttle:  sleep(inter_item_delay) if more tickers remain.

Then ``assemble()`` stamps the digest with ``clock()``.

Failure isolation
-----------------
- Missing quote:        ticker omitted; no placeholder in the digest.
- Provider failure:     absorbed by the retry policy (fallback assessment).
- Anything else:        propagates; the run is aborted (run-level fault).

The inter-item delay is independent of the retry policy's own backoff. It
keeps the whole batch under the provider's rate limit; the backoff only
reacts once the limit has been hit.

Every wait goes through the injected ``sleep`` and the timestamp through
``clock``, so tests run instantly and can assert on the exact waits.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Protocol

from stock_forecaster.errors import QuoteUnavailable
from stock_forecaster.models.digest import Digest, TickerResult
from stock_forecaster.models.forecast import ForecastAssessment
from stock_forecaster.models.quote import QuoteSnapshot
from stock_forecaster.models.ticker import Ticker
from stock_forecaster.pipeline.digest import assemble
from stock_forecaster.pipeline.retry import (
    DEFAULT_BASE_DELAY_SEC,
    DEFAULT_MAX_ATTEMPTS,
    with_retry,
)

logger = logging.getLogger(__name__)

DEFAULT_INTER_ITEM_DELAY_SEC = 5.0
DEFAULT_MARKET_OPEN_TIME = "9:30 AM EST"


class QuoteSource(Protocol):
    def fetch_quote(self, symbol: str) -> QuoteSnapshot: ...


class ForecastProvider(Protocol):
    def assess(
        self, symbol: str, display_name: str, snapshot: QuoteSnapshot
    ) -> ForecastAssessment: ...


@dataclass
class BatchSummary:
    """Bookkeeping for the most recent ``run()``.

    Attributes:
        run_id:    Short id tagging every log record of the run.
        requested: Symbols in the order they were requested.
        included:  Symbols that made it into the digest.
        skipped:   symbol -> reason, for tickers without a quote.
        degraded:  Symbols whose assessment is the fallback.
        retried:   Symbols that needed more than one provider call.
        waits:     Every sleep performed (backoff and throttle), in order.
    """

    run_id:    str             = ""
    requested: list[str]       = field(default_factory=list)
    included:  list[str]       = field(default_factory=list)
    skipped:   dict[str, str]  = field(default_factory=dict)
    degraded:  list[str]       = field(default_factory=list)
    retried:   list[str]       = field(default_factory=list)
    waits:     list[float]     = field(default_factory=list)


class BatchOrchestrator:
    """Sequential single-worker forecast pipeline.

    Args:
        quote_source:      Object with ``fetch_quote(symbol)``.
        forecast_provider: Object with ``assess(symbol, display_name, snapshot)``.
        max_attempts:      Provider calls allowed per ticker.
        base_delay:        Backoff unit in seconds (wait = attempt * base_delay).
        inter_item_delay:  Pause between consecutive tickers, in seconds.
        market_open_time:  Display string copied into the digest.
        sleep:             Wait function (default ``time.sleep``).
        clock:             Returns the digest timestamp (default ``datetime.now``).
    """

    def __init__(
        self,
        quote_source: QuoteSource,
        forecast_provider: ForecastProvider,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY_SEC,
        inter_item_delay: float = DEFAULT_INTER_ITEM_DELAY_SEC,
        market_open_time: str = DEFAULT_MARKET_OPEN_TIME,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}.")
        self.quote_source      = quote_source
        self.forecast_provider = forecast_provider
        self.max_attempts      = max_attempts
        self.base_delay        = base_delay
        self.inter_item_delay  = inter_item_delay
        self.market_open_time  = market_open_time
        self.clock             = clock or datetime.now
        self._sleep            = sleep
        self.last_summary: Optional[BatchSummary] = None

    def run(self, tickers: Sequence[Ticker]) -> Digest:
        """Process ``tickers`` in order and return the assembled digest."""
        summary = BatchSummary(
            run_id=uuid.uuid4().hex[:8],
            requested=[t.symbol for t in tickers],
        )
        self.last_summary = summary
        results: list[TickerResult] = []

        logger.info(
            "BatchOrchestrator | tickers=%s | max_attempts=%d | inter_item_delay=%.1fs",
            summary.requested, self.max_attempts, self.inter_item_delay,
            extra={"run_id": summary.run_id},
        )

        for index, ticker in enumerate(tickers):
            result = self._process(ticker, summary)
            if result is not None:
                results.append(result)

            if index < len(tickers) - 1:
                self._wait(self.inter_item_delay, summary)

        digest = assemble(results, self.clock(), self.market_open_time)
        logger.info(
            "BatchOrchestrator finished | included=%d/%d | skipped=%s | degraded=%s",
            len(summary.included), len(summary.requested),
            sorted(summary.skipped) or "none", summary.degraded or "none",
            extra={"run_id": summary.run_id},
        )
        return digest

    # ── Private helpers ───────────────────────────────────────────────────────

    def _process(self, ticker: Ticker, summary: BatchSummary) -> Optional[TickerResult]:
        """Quote then assess one ticker; ``None`` when the quote is unavailable."""
        context = {"run_id": summary.run_id, "symbol": ticker.symbol}
        logger.info("[%s] Fetching quote ...", ticker.symbol, extra=context)
        try:
            snapshot = self.quote_source.fetch_quote(ticker.symbol)
        except QuoteUnavailable as exc:
            logger.warning("[%s] Skipped: %s", ticker.symbol, exc.reason, extra=context)
            summary.skipped[ticker.symbol] = exc.reason
            return None

        logger.info(
            "[%s] %s (%s%%); requesting assessment ...",
            ticker.symbol, snapshot.current_price, snapshot.percent_change_display,
            extra=context,
        )
        outcome = with_retry(
            lambda: self.forecast_provider.assess(
                ticker.symbol, ticker.display_name, snapshot
            ),
            snapshot,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            sleep=lambda seconds: self._wait(seconds, summary),
            label=ticker.symbol,
            log_context={"run_id": summary.run_id},
        )

        summary.included.append(ticker.symbol)
        if outcome.degraded:
            summary.degraded.append(ticker.symbol)
        if outcome.retried:
            summary.retried.append(ticker.symbol)

        return TickerResult(
            ticker=ticker,
            quote=snapshot,
            assessment=outcome.assessment,
            attempts=outcome.attempts,
            retried=outcome.retried,
            degraded=outcome.degraded,
        )

    def close(self) -> None:
        """Release collaborator resources (HTTP connection pools)."""
        for collaborator in (self.quote_source, self.forecast_provider):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()

    def _wait(self, seconds: float, summary: BatchSummary) -> None:
        summary.waits.append(seconds)
        self._sleep(seconds)
