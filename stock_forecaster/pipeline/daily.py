"""
Daily forecast job — the unit both triggers invoke.

  generate()  → BatchOrchestrator.run(configured tickers) → Digest
  send()      → EmailSender.send_digest(digest)           → DeliveryResult
  run()       → generate() then send()                    → DailyRunResult

A delivery failure (SMTP error, or no recipients) is logged and reported in
the result, not raised: the digest was produced, and the caller decides what
a failed send means (the CLI exits 1, the scheduler just logs it). Faults
during generation propagate.

``build_daily_job(config)`` wires the real HTTP clients and SMTP sender
from ``AppConfig``. The job owns those clients; use it as a context manager
(or call ``close()``) once no further runs are due::

    with build_daily_job(config) as job:
        job.run()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from stock_forecaster.config import AppConfig
from stock_forecaster.delivery.email_sender import DeliveryResult, EmailSender
from stock_forecaster.errors import ConfigError, DeliveryError
from stock_forecaster.ingestion.gemini_client import GeminiForecastClient
from stock_forecaster.ingestion.quote_client import QuoteClient
from stock_forecaster.models.digest import Digest
from stock_forecaster.models.ticker import Ticker
from stock_forecaster.pipeline.orchestrator import BatchOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailyRunResult:
    """Digest produced by a run plus what happened when it was sent."""

    digest: Digest
    delivery: DeliveryResult


class DailyForecastJob:
    """Generate the digest for the configured tickers and email it.

    Args:
        config:       Application config (tickers, recipients, subject prefix).
        orchestrator: Pipeline used by ``generate()``.
        sender:       Email sender used by ``send()``; ``None`` for preview-only jobs.
        tickers:      Override for ``config.tickers.as_tickers()``.
    """

    def __init__(
        self,
        config: AppConfig,
        orchestrator: BatchOrchestrator,
        sender: Optional[EmailSender] = None,
        tickers: Optional[Sequence[Ticker]] = None,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator
        self.sender = sender
        self.tickers = tuple(tickers) if tickers is not None else config.tickers.as_tickers()

    def generate(self) -> Digest:
        logger.info("Generating forecast digest for %d ticker(s) ...", len(self.tickers))
        digest = self.orchestrator.run(self.tickers)
        summary = self.orchestrator.last_summary
        logger.info(
            "Digest ready | tickers=%d | degraded=%d",
            digest.ticker_count, digest.degraded_count,
            extra={"run_id": summary.run_id if summary else None},
        )
        return digest

    def send(self, digest: Digest) -> DeliveryResult:
        if self.sender is None:
            return DeliveryResult(success=False, error="No email sender configured.")
        try:
            message_id = self.sender.send_digest(
                digest,
                recipients=list(self.config.email.recipients),
                subject_prefix=self.config.email.subject_prefix,
            )
        except (ConfigError, DeliveryError) as exc:
            logger.error("Failed to send daily forecast: %s", exc)
            return DeliveryResult(success=False, error=str(exc))
        return DeliveryResult(success=True, message_id=message_id)

    def run(self) -> DailyRunResult:
        """Generate and send. Generation faults propagate; delivery faults do not."""
        started = datetime.now()
        logger.info("=== Starting daily forecast process at %s ===", started.isoformat(timespec="seconds"))

        digest = self.generate()
        delivery = self.send(digest)

        if delivery.success:
            logger.info("Daily forecast sent successfully (message_id=%s).", delivery.message_id)
        else:
            logger.error("Daily forecast NOT sent: %s", delivery.error)
        logger.info("=== Daily forecast process complete ===")
        return DailyRunResult(digest=digest, delivery=delivery)

    def close(self) -> None:
        """Close the orchestrator's HTTP clients. The job is unusable afterwards."""
        self.orchestrator.close()

    def __enter__(self) -> "DailyForecastJob":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_orchestrator(config: AppConfig) -> BatchOrchestrator:
    """Wire the quote and Gemini clients into an orchestrator.

    Raises:
        ConfigError: If GOOGLE_API_KEY is missing.
    """
    quote_client = QuoteClient(
        base_url=config.quotes.base_url,
        timeout=config.quotes.timeout_sec,
        user_agent=config.quotes.user_agent,
    )
    provider = GeminiForecastClient(
        api_key=config.provider.api_key,
        model=config.provider.model,
        base_url=config.provider.base_url,
        timeout=config.provider.timeout_sec,
    )
    tz = ZoneInfo(config.schedule.timezone)
    return BatchOrchestrator(
        quote_client,
        provider,
        max_attempts=config.pipeline.max_attempts,
        base_delay=config.pipeline.base_delay_sec,
        inter_item_delay=config.pipeline.inter_item_delay_sec,
        market_open_time=config.pipeline.market_open_time,
        clock=lambda: datetime.now(tz),
    )


def build_email_sender(config: AppConfig) -> EmailSender:
    """Build the SMTP sender from ``config.email``.

    Raises:
        ConfigError: If EMAIL_USER is missing.
    """
    ec = config.email
    return EmailSender(
        host=ec.smtp_host,
        port=ec.smtp_port,
        username=ec.username,
        password=ec.password,
        use_starttls=ec.use_starttls,
    )


def build_daily_job(
    config: AppConfig,
    with_email: bool = True,
    tickers: Optional[Sequence[Ticker]] = None,
) -> DailyForecastJob:
    """Fully wired ``DailyForecastJob``; ``with_email=False`` for previews."""
    sender = build_email_sender(config) if with_email else None
    return DailyForecastJob(
        config=config,
        orchestrator=build_orchestrator(config),
        sender=sender,
        tickers=tickers,
    )
