"""
Tests for BatchOrchestrator — ordering, skip semantics, and pacing.

What we test
------------
1. Scenario A: one ticker, first-try success -> one result, no retries.
2. Scenario B: quote failure for the first ticker -> ticker omitted, order kept.
3. Scenario C: RateLimited twice then success -> waits 5s, 10s; real assessment.
4. Scenario D: RateLimited on every attempt -> fallback, waits 5s, 10s only.
5. Result count never exceeds the number of requested tickers.
6. N tickers -> exactly N-1 inter-item waits (skipped tickers included).
7. Provider calls never overlap and follow input order.
8. Unexpected exceptions abort the run.
9. Log records carry the run id and ticker symbol.
10. close() releases collaborators that have a close() method.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from stock_forecaster.errors import ForecastProviderError, RateLimited
from stock_forecaster.models.forecast import Recommendation
from stock_forecaster.models.quote import QuoteSnapshot
from stock_forecaster.models.ticker import Ticker
from stock_forecaster.pipeline.orchestrator import BatchOrchestrator

from conftest import FIXED_NOW, FakeProvider, FakeQuoteSource, make_assessment


def _tickers(*symbols: str) -> list[Ticker]:
    return [Ticker(symbol=s) for s in symbols]


def _orchestrator(quotes, provider, sleep, **kwargs) -> BatchOrchestrator:
    return BatchOrchestrator(
        quotes,
        provider,
        sleep=sleep,
        clock=lambda: FIXED_NOW,
        **kwargs,
    )


# ── End-to-end scenarios ──────────────────────────────────────────────────────

class TestScenarios:
    def test_single_ticker_first_try(self, recorded_sleep):
        quotes = FakeQuoteSource({"AAPL": QuoteSnapshot.from_prices("230.00", "228.00")})
        provider = FakeProvider([make_assessment("BUY", 225, 240, "strong momentum")])

        digest = _orchestrator(quotes, provider, recorded_sleep.append).run(
            [Ticker(symbol="AAPL", display_name="Apple")]
        )

        assert digest.ticker_count == 1
        result = digest.results[0]
        assert result.assessment.recommendation is Recommendation.BUY
        assert result.assessment.price_target.low == Decimal("225.00")
        assert result.assessment.key_insight == "strong momentum"
        assert result.attempts == 1
        assert not result.retried
        assert not result.degraded
        assert recorded_sleep == []

    def test_quote_failure_omits_ticker(self, recorded_sleep):
        quotes = FakeQuoteSource(failing=["AAPL"])
        provider = FakeProvider()
        orch = _orchestrator(quotes, provider, recorded_sleep.append)

        digest = orch.run(_tickers("AAPL", "MSFT"))

        assert digest.symbols == ["MSFT"]
        assert provider.calls == ["MSFT"]
        assert orch.last_summary.skipped == {"AAPL": "HTTP 404"}
        assert orch.last_summary.included == ["MSFT"]

    def test_rate_limited_then_success(self, recorded_sleep):
        real = make_assessment("HOLD", 226, 234, "range-bound")
        provider = FakeProvider([RateLimited(), RateLimited(), real])

        digest = _orchestrator(FakeQuoteSource(), provider, recorded_sleep.append).run(
            _tickers("AAPL")
        )

        assert recorded_sleep == [5.0, 10.0]
        result = digest.results[0]
        assert result.assessment == real
        assert result.attempts == 3
        assert result.retried
        assert not result.degraded

    def test_rate_limited_exhausted(self, recorded_sleep):
        quotes = FakeQuoteSource({"AAPL": QuoteSnapshot.from_prices("230.00", "228.00")})
        provider = FakeProvider([RateLimited()])

        digest = _orchestrator(quotes, provider, recorded_sleep.append).run(_tickers("AAPL"))

        assert recorded_sleep == [5.0, 10.0]
        assert len(provider.calls) == 3
        result = digest.results[0]
        assert result.degraded
        assert result.assessment.recommendation is Recommendation.HOLD
        assert result.assessment.price_target.low == Decimal("225.00")
        assert result.assessment.price_target.high == Decimal("235.00")


# ── Invariants ────────────────────────────────────────────────────────────────

class TestBatchInvariants:
    @pytest.mark.parametrize("count", [1, 2, 5])
    def test_n_minus_one_inter_item_waits(self, count, recorded_sleep):
        symbols = [f"T{i}" for i in range(count)]
        _orchestrator(FakeQuoteSource(), FakeProvider(), recorded_sleep.append).run(
            _tickers(*symbols)
        )
        assert recorded_sleep == [5.0] * (count - 1)

    def test_skipped_tickers_still_paced(self, recorded_sleep):
        quotes = FakeQuoteSource(failing=["B", "C"])
        _orchestrator(quotes, FakeProvider(), recorded_sleep.append).run(
            _tickers("A", "B", "C")
        )
        assert recorded_sleep == [5.0, 5.0]

    def test_throttle_and_backoff_are_independent(self, recorded_sleep):
        provider = FakeProvider({
            "A": [RateLimited(), make_assessment()],
            "B": [make_assessment()],
        })
        orch = _orchestrator(FakeQuoteSource(), provider, recorded_sleep.append,
                             inter_item_delay=2.0, base_delay=1.0)

        orch.run(_tickers("A", "B"))

        # backoff for A, throttle before B
        assert recorded_sleep == [1.0, 2.0]
        assert orch.last_summary.waits == [1.0, 2.0]
        assert orch.last_summary.retried == ["A"]

    def test_result_count_bounded_and_ordered(self, recorded_sleep):
        quotes = FakeQuoteSource(failing=["C"])
        provider = FakeProvider({"B": [ForecastProviderError("boom")]})
        symbols = ["A", "B", "C", "D"]

        digest = _orchestrator(quotes, provider, recorded_sleep.append).run(
            _tickers(*symbols)
        )

        assert digest.ticker_count <= len(symbols)
        assert digest.symbols == ["A", "B", "D"]
        assert [r.degraded for r in digest.results] == [False, True, False]
        assert quotes.calls == symbols
        assert provider.calls == ["A", "B", "D"]

    def test_other_failure_has_no_backoff(self, recorded_sleep):
        provider = FakeProvider([ForecastProviderError("bad JSON")])
        orch = _orchestrator(FakeQuoteSource(), provider, recorded_sleep.append)

        digest = orch.run(_tickers("AAPL"))

        assert recorded_sleep == []
        assert orch.last_summary.degraded == ["AAPL"]
        assert digest.results[0].degraded

    def test_all_quotes_fail_gives_empty_digest(self, recorded_sleep):
        quotes = FakeQuoteSource(failing=["A", "B"])
        digest = _orchestrator(quotes, FakeProvider(), recorded_sleep.append).run(
            _tickers("A", "B")
        )
        assert digest.is_empty
        assert digest.market_open_time == "9:30 AM EST"

    def test_empty_ticker_list(self, recorded_sleep):
        digest = _orchestrator(FakeQuoteSource(), FakeProvider(), recorded_sleep.append).run([])
        assert digest.is_empty
        assert recorded_sleep == []

    def test_digest_stamped_with_clock(self, recorded_sleep):
        digest = _orchestrator(
            FakeQuoteSource(), FakeProvider(), recorded_sleep.append,
            market_open_time="9:30 AM ET",
        ).run(_tickers("A"))
        assert digest.run_date == "Monday, October 19, 2026"
        assert digest.run_time == "8:30:05 AM"
        assert digest.market_open_time == "9:30 AM ET"

    def test_unexpected_error_aborts_run(self, recorded_sleep):
        class ExplodingSource:
            def fetch_quote(self, symbol):
                raise RuntimeError("disk on fire")

        with pytest.raises(RuntimeError):
            _orchestrator(ExplodingSource(), FakeProvider(), recorded_sleep.append).run(
                _tickers("A")
            )

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            BatchOrchestrator(FakeQuoteSource(), FakeProvider(), max_attempts=0)



# ── Log context and resources ─────────────────────────────────────────────────

class TestLogContext:
    def test_ticker_records_tagged_with_run_and_symbol(self, recorded_sleep, caplog):
        caplog.set_level(logging.INFO, logger="stock_forecaster")
        quotes = FakeQuoteSource(failing=["B"])
        orch = _orchestrator(quotes, FakeProvider(), recorded_sleep.append)

        orch.run(_tickers("A", "B"))

        run_id = orch.last_summary.run_id
        assert len(run_id) == 8
        skipped = [r for r in caplog.records if "Skipped" in r.getMessage()]
        assert len(skipped) == 1
        assert skipped[0].symbol == "B"
        assert skipped[0].run_id == run_id
        tagged = {r.symbol for r in caplog.records if getattr(r, "symbol", None)}
        assert tagged == {"A", "B"}
        assert all(getattr(r, "run_id", None) == run_id for r in caplog.records
                   if r.name == "stock_forecaster.pipeline.orchestrator")

    def test_backoff_records_carry_attempt_and_delay(self, recorded_sleep, caplog):
        caplog.set_level(logging.INFO, logger="stock_forecaster")
        provider = FakeProvider([RateLimited(), make_assessment()])
        orch = _orchestrator(FakeQuoteSource(), provider, recorded_sleep.append)

        orch.run(_tickers("AAPL"))

        backoff = [r for r in caplog.records if "Rate limited" in r.getMessage()]
        assert len(backoff) == 1
        record = backoff[0]
        assert record.symbol == "AAPL"
        assert record.run_id == orch.last_summary.run_id
        assert record.attempt == 1
        assert record.max_attempts == 3
        assert record.delay_sec == 5.0

    def test_each_run_gets_a_new_id(self, recorded_sleep):
        orch = _orchestrator(FakeQuoteSource(), FakeProvider(), recorded_sleep.append)
        orch.run(_tickers("A"))
        first = orch.last_summary.run_id
        orch.run(_tickers("A"))
        assert orch.last_summary.run_id != first


class TestClose:
    def test_closes_collaborators(self):
        quotes, provider = MagicMock(), MagicMock()
        BatchOrchestrator(quotes, provider).close()
        quotes.close.assert_called_once_with()
        provider.close.assert_called_once_with()

    def test_collaborators_without_close_are_fine(self):
        BatchOrchestrator(FakeQuoteSource(), FakeProvider()).close()
