"""
Shared pytest fixtures for the Stock Forecaster test suite.

Provides:
  - Sample domain objects (ticker, snapshot, assessment, digest).
  - ``FakeQuoteSource`` / ``FakeProvider``: scripted collaborators that
    record every call, so pipeline tests never touch the network.
  - ``recorded_sleep``: a sleep replacement that records waits instead of
    blocking.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Union

import pytest

from stock_forecaster.errors import QuoteUnavailable
from stock_forecaster.models.digest import Digest, TickerResult
from stock_forecaster.models.forecast import ForecastAssessment, PriceTarget, Recommendation
from stock_forecaster.models.quote import QuoteSnapshot
from stock_forecaster.models.ticker import Ticker

FIXED_NOW = datetime(2026, 10, 19, 8, 30, 5)


# ── Scripted collaborators ────────────────────────────────────────────────────

class FakeQuoteSource:
    """Returns canned snapshots; symbols in ``failing`` raise QuoteUnavailable."""

    def __init__(
        self,
        snapshots: dict[str, QuoteSnapshot] | None = None,
        failing: Iterable[str] = (),
        default: QuoteSnapshot | None = None,
    ) -> None:
        self.snapshots = snapshots or {}
        self.failing = set(failing)
        self.default = default or QuoteSnapshot.from_prices(100, 99)
        self.calls: list[str] = []

    def fetch_quote(self, symbol: str) -> QuoteSnapshot:
        self.calls.append(symbol)
        if symbol in self.failing:
            raise QuoteUnavailable(symbol, "HTTP 404")
        return self.snapshots.get(symbol, self.default)


ProviderStep = Union[ForecastAssessment, Exception]


class FakeProvider:
    """Plays back a script of assessments/exceptions, per symbol or shared.

    ``script`` is either a list (shared by all symbols, consumed in order)
    or a dict of symbol -> list. When a script runs out the last step repeats.
    """

    def __init__(
        self,
        script: list[ProviderStep] | dict[str, list[ProviderStep]] | None = None,
        default: ForecastAssessment | None = None,
    ) -> None:
        self.script = script if script is not None else []
        self.default = default or make_assessment()
        self.calls: list[str] = []
        self._positions: dict[str, int] = {}

    def _steps_for(self, symbol: str) -> list[ProviderStep]:
        if isinstance(self.script, dict):
            return self.script.get(symbol, [])
        return self.script

    def assess(
        self, symbol: str, display_name: str, snapshot: QuoteSnapshot
    ) -> ForecastAssessment:
        self.calls.append(symbol)
        steps = self._steps_for(symbol)
        key = symbol if isinstance(self.script, dict) else "*"
        pos = self._positions.get(key, 0)
        self._positions[key] = pos + 1
        if not steps:
            return self.default
        step = steps[min(pos, len(steps) - 1)]
        if isinstance(step, Exception):
            raise step
        return step


def make_assessment(
    recommendation: str = "BUY",
    low: float = 225.0,
    high: float = 240.0,
    insight: str = "strong momentum",
) -> ForecastAssessment:
    return ForecastAssessment(
        recommendation=Recommendation(recommendation),
        price_target=PriceTarget(low=Decimal(str(low)), high=Decimal(str(high))),
        key_insight=insight,
    )


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def recorded_sleep() -> list[float]:
    """A list that doubles as a sleep function via ``recorded_sleep.append``."""
    return []


@pytest.fixture
def sample_ticker() -> Ticker:
    return Ticker(symbol="AAPL", display_name="Apple")


@pytest.fixture
def sample_snapshot() -> QuoteSnapshot:
    """AAPL at 230.00, previous close 228.00."""
    return QuoteSnapshot.from_prices(
        current_price=230.00,
        previous_close=228.00,
        fifty_two_week_high=260.10,
        fifty_two_week_low=164.08,
    )


@pytest.fixture
def sample_assessment() -> ForecastAssessment:
    return make_assessment()


@pytest.fixture
def sample_result(sample_ticker, sample_snapshot, sample_assessment) -> TickerResult:
    return TickerResult(
        ticker=sample_ticker,
        quote=sample_snapshot,
        assessment=sample_assessment,
    )


@pytest.fixture
def sample_digest(sample_result) -> Digest:
    return Digest(
        run_date="Monday, October 19, 2026",
        run_time="8:30:05 AM",
        market_open_time="9:30 AM EST",
        results=(sample_result,),
    )
