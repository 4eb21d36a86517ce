"""Tests for digest assembly, time helpers, and the DailyForecastJob wiring."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from stock_forecaster.config import AppConfig, EmailConfig, ProviderConfig
from stock_forecaster.delivery.email_sender import EmailSender
from stock_forecaster.errors import ConfigError, DeliveryError
from stock_forecaster.ingestion.gemini_client import GeminiForecastClient
from stock_forecaster.ingestion.quote_client import QuoteClient
from stock_forecaster.models.ticker import Ticker
from stock_forecaster.pipeline.daily import (
    DailyForecastJob,
    build_daily_job,
    build_orchestrator,
)
from stock_forecaster.pipeline.digest import assemble
from stock_forecaster.pipeline.orchestrator import BatchOrchestrator
from stock_forecaster.utils.time_utils import format_run_date, format_run_time, parse_hhmm

from conftest import FIXED_NOW, FakeProvider, FakeQuoteSource


def _config(recipients=("ops@example.com",), **email) -> AppConfig:
    return AppConfig(
        provider=ProviderConfig(api_key="test-key"),
        email=EmailConfig(recipients=list(recipients), username="bot@example.com",
                          password="pw", **email),
    )


def _orchestrator(recorded_sleep) -> BatchOrchestrator:
    return BatchOrchestrator(
        FakeQuoteSource(), FakeProvider(), sleep=recorded_sleep.append, clock=lambda: FIXED_NOW
    )


# ── assemble / time helpers ───────────────────────────────────────────────────

class TestAssemble:
    def test_preserves_order_and_metadata(self, sample_result):
        other = sample_result.model_copy(update={"ticker": Ticker(symbol="MSFT")})
        digest = assemble([other, sample_result], FIXED_NOW, "9:30 AM EST")
        assert digest.symbols == ["MSFT", "AAPL"]
        assert digest.run_date == "Monday, October 19, 2026"
        assert digest.run_time == "8:30:05 AM"
        assert digest.market_open_time == "9:30 AM EST"

    def test_empty_results_are_valid(self):
        digest = assemble([], FIXED_NOW, "9:30 AM EST")
        assert digest.is_empty


class TestTimeUtils:
    def test_format_run_date_has_no_zero_padding(self):
        assert format_run_date(datetime(2026, 3, 2)) == "Monday, March 2, 2026"

    @pytest.mark.parametrize("dt, expected", [
        (datetime(2026, 1, 1, 0, 5, 9), "12:05:09 AM"),
        (datetime(2026, 1, 1, 12, 0, 0), "12:00:00 PM"),
        (datetime(2026, 1, 1, 15, 30, 1), "3:30:01 PM"),
    ])
    def test_format_run_time(self, dt, expected):
        assert format_run_time(dt) == expected

    def test_parse_hhmm(self):
        t = parse_hhmm("08:30")
        assert (t.hour, t.minute) == (8, 30)

    @pytest.mark.parametrize("raw", ["8", "25:00", "ab:cd", "08:30:00"])
    def test_parse_hhmm_rejects_garbage(self, raw):
        with pytest.raises(ValueError):
            parse_hhmm(raw)


# ── DailyForecastJob ──────────────────────────────────────────────────────────

class TestDailyForecastJob:
    def test_generate_uses_configured_tickers(self, recorded_sleep):
        job = DailyForecastJob(_config(), _orchestrator(recorded_sleep))
        digest = job.generate()
        assert digest.symbols == ["MSFT"]

    def test_ticker_override(self, recorded_sleep):
        job = DailyForecastJob(
            _config(), _orchestrator(recorded_sleep),
            tickers=[Ticker(symbol="AAPL"), Ticker(symbol="NVDA")],
        )
        assert job.generate().symbols == ["AAPL", "NVDA"]

    def test_run_sends_to_configured_recipients(self, recorded_sleep):
        sender = MagicMock(spec=EmailSender)
        sender.send_digest.return_value = "<id@example.com>"
        config = _config(recipients=("a@example.com", "b@example.com"), subject_prefix="[AM]")

        result = DailyForecastJob(config, _orchestrator(recorded_sleep), sender=sender).run()

        assert result.delivery.success
        assert result.delivery.message_id == "<id@example.com>"
        sender.send_digest.assert_called_once_with(
            result.digest,
            recipients=["a@example.com", "b@example.com"],
            subject_prefix="[AM]",
        )

    def test_delivery_error_reported_not_raised(self, recorded_sleep):
        sender = MagicMock(spec=EmailSender)
        sender.send_digest.side_effect = DeliveryError("SMTP down")

        result = DailyForecastJob(_config(), _orchestrator(recorded_sleep), sender=sender).run()

        assert not result.delivery.success
        assert "SMTP down" in result.delivery.error
        assert result.digest.ticker_count == 1

    def test_missing_recipients_reported_not_raised(self, recorded_sleep):
        sender = MagicMock(spec=EmailSender)
        sender.send_digest.side_effect = ConfigError("No email recipients configured.")

        result = DailyForecastJob(_config(), _orchestrator(recorded_sleep), sender=sender).run()

        assert not result.delivery.success
        assert "recipients" in result.delivery.error

    def test_no_sender(self, recorded_sleep):
        job = DailyForecastJob(_config(), _orchestrator(recorded_sleep))
        result = job.run()
        assert not result.delivery.success
        assert "No email sender" in result.delivery.error

    def test_generation_fault_propagates(self):
        orch = MagicMock(spec=BatchOrchestrator)
        orch.run.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            DailyForecastJob(_config(), orch, sender=MagicMock()).run()

    def test_context_manager_closes_orchestrator(self):
        orch = MagicMock(spec=BatchOrchestrator)
        with DailyForecastJob(_config(), orch) as job:
            assert job.orchestrator is orch
            orch.close.assert_not_called()
        orch.close.assert_called_once_with()

    def test_context_manager_closes_on_fault(self):
        orch = MagicMock(spec=BatchOrchestrator)
        orch.run.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            with DailyForecastJob(_config(), orch) as job:
                job.generate()
        orch.close.assert_called_once_with()


class TestBuilders:
    def test_build_orchestrator_wires_config(self):
        orch = build_orchestrator(_config())
        assert isinstance(orch.quote_source, QuoteClient)
        assert isinstance(orch.forecast_provider, GeminiForecastClient)
        assert orch.max_attempts == 3
        assert orch.base_delay == 5.0
        assert orch.inter_item_delay == 5.0
        assert orch.market_open_time == "9:30 AM EST"

    def test_build_orchestrator_requires_api_key(self):
        with pytest.raises(ConfigError, match="GOOGLE_API_KEY"):
            build_orchestrator(AppConfig())

    def test_build_daily_job_preview_has_no_sender(self):
        job = build_daily_job(_config(), with_email=False)
        assert job.sender is None

    def test_build_daily_job_requires_email_user(self):
        config = AppConfig(provider=ProviderConfig(api_key="k"))
        with pytest.raises(ConfigError, match="EMAIL_USER"):
            build_daily_job(config, with_email=True)

    def test_build_daily_job_with_email(self):
        job = build_daily_job(_config())
        assert isinstance(job.sender, EmailSender)
        assert job.sender.sender == "bot@example.com"

    def test_close_releases_http_clients(self):
        job = build_daily_job(_config(), with_email=False)
        job.close()
        assert job.orchestrator.quote_source._client.is_closed
        assert job.orchestrator.forecast_provider._client.is_closed
