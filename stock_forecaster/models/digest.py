"""
Per-run output models.

A ``TickerResult`` only exists for a ticker whose quote was obtained, and
it always carries an assessment (real or fallback). ``Digest`` wraps the
ordered results with run metadata and is handed to delivery unchanged.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

from stock_forecaster.models.forecast import ForecastAssessment
from stock_forecaster.models.quote import QuoteSnapshot
from stock_forecaster.models.ticker import Ticker


class TickerResult(BaseModel):
    """One ticker's quote plus its assessment.

    Attributes:
        ticker:     The ticker this result describes.
        quote:      Snapshot fetched for this run.
        assessment: Provider assessment, or the fallback when degraded.
        attempts:   Provider calls made (1 when the first call succeeded).
        retried:    True when more than one provider call was made.
        degraded:   True when ``assessment`` is the locally built fallback.
    """

    model_config = ConfigDict(frozen=True)

    ticker: Ticker
    quote: QuoteSnapshot
    assessment: ForecastAssessment
    attempts: int = 1
    retried: bool = False
    degraded: bool = False

    @field_validator("attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"attempts must be >= 1, got {v}.")
        return v


class Digest(BaseModel):
    """Complete output of one pipeline run.

    Attributes:
        run_date:         E.g. ``"Monday, October 19, 2026"``.
        run_time:         E.g. ``"8:30:05 AM"``.
        market_open_time: Configured display string, e.g. ``"9:30 AM EST"``.
        results:          Ticker results in input order; skipped tickers absent.
    """

    model_config = ConfigDict(frozen=True)

    run_date: str
    run_time: str
    market_open_time: str
    results: tuple[TickerResult, ...] = ()

    @property
    def ticker_count(self) -> int:
        return len(self.results)

    @property
    def degraded_count(self) -> int:
        return sum(1 for r in self.results if r.degraded)

    @property
    def is_empty(self) -> bool:
        return not self.results

    @property
    def symbols(self) -> list[str]:
        return [r.ticker.symbol for r in self.results]
