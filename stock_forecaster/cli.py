"""
Stock Forecaster — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (preview, send, schedule, probe).
  5. Report result to stdout.

Install and run::

    pip install -e .
    stock-forecaster --help
    stock-forecaster validate-config
    stock-forecaster test-forecast --tickers "AAPL:Apple,MSFT"
    stock-forecaster send-forecast
    stock-forecaster start-scheduler
    stock-forecaster status
    stock-forecaster probe-models
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="stock-forecaster",
    help="Daily AI stock forecast digest — quotes + Gemini assessments, by email.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from stock_forecaster.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from stock_forecaster.utils.logging import configure_logging
    configure_logging(config.logging)


def _tickers_override(raw: Optional[str]):
    """Parse ``--tickers`` into Ticker objects, or ``None`` when not given."""
    if not raw:
        return None
    from stock_forecaster.config import parse_ticker_list
    from stock_forecaster.models.ticker import Ticker

    entries = parse_ticker_list(raw)
    if not entries:
        typer.echo("[ERROR] --tickers did not contain any symbols.", err=True)
        raise typer.Exit(code=1)
    return [Ticker(**e) for e in entries]


_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")
_TICKERS_OPTION = typer.Option(
    None,
    "--tickers",
    "-t",
    help='Override the watchlist, e.g. "AAPL:Apple,MSFT".',
)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = _CONFIG_OPTION,
    show_full: bool = typer.Option(False, "--full", help="Print full config as JSON."),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation. Secrets are masked.
    """
    config = _load_config_or_exit(config_path)

    tickers = config.tickers.as_tickers()
    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Tickers:          {', '.join(t.symbol for t in tickers)}")
    typer.echo(f"  Max attempts:     {config.pipeline.max_attempts}")
    typer.echo(f"  Backoff unit:     {config.pipeline.base_delay_sec}s")
    typer.echo(f"  Inter-item delay: {config.pipeline.inter_item_delay_sec}s")
    typer.echo(f"  Gemini model:     {config.provider.model}")
    typer.echo(f"  GOOGLE_API_KEY:   {'set' if config.provider.api_key else 'MISSING'}")
    typer.echo(f"  EMAIL_USER:       {config.email.username or 'MISSING'}")
    typer.echo(f"  Recipients:       {', '.join(config.email.recipients) or '(none)'}")
    typer.echo(f"  Log level:        {config.logging.level}")

    if show_full:
        dumped = config.model_dump(mode="json")
        dumped["provider"]["api_key"] = "***" if config.provider.api_key else None
        dumped["email"]["password"] = "***" if config.email.password else None
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(dumped, indent=2))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("test-forecast")
def test_forecast(
    config_path: Optional[str] = _CONFIG_OPTION,
    tickers: Optional[str] = _TICKERS_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the digest as JSON."),
) -> None:
    """Generate a forecast digest and print it. No email is sent.

    Exits with code 1 if the run aborts.
    """
    from stock_forecaster.delivery.formatters import format_digest_table
    from stock_forecaster.errors import ConfigError
    from stock_forecaster.pipeline.daily import build_daily_job

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        job = build_daily_job(config, with_email=False, tickers=_tickers_override(tickers))
    except ConfigError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    with job:
        try:
            digest = job.generate()
        except Exception as exc:
            typer.echo(f"[ERROR] Forecast run failed: {exc}", err=True)
            raise typer.Exit(code=1)
        summary = job.orchestrator.last_summary

    if as_json:
        typer.echo(json.dumps(digest.model_dump(mode="json"), indent=2))
        return

    typer.echo(format_digest_table(digest))
    if summary is not None and summary.skipped:
        typer.echo("")
        for symbol, reason in summary.skipped.items():
            typer.echo(f"  [SKIPPED] {symbol}: {reason}")


@app.command("send-forecast")
def send_forecast(
    config_path: Optional[str] = _CONFIG_OPTION,
    tickers: Optional[str] = _TICKERS_OPTION,
) -> None:
    """Generate the digest and email it now (manual trigger).

    Exits with code 1 if the run aborts or the email could not be sent.
    """
    from stock_forecaster.errors import ConfigError
    from stock_forecaster.pipeline.daily import build_daily_job

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if not config.email.recipients:
        typer.echo("[ERROR] No recipients configured ([email].recipients).", err=True)
        raise typer.Exit(code=1)

    try:
        job = build_daily_job(config, with_email=True, tickers=_tickers_override(tickers))
    except ConfigError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    with job:
        try:
            result = job.run()
        except Exception as exc:
            typer.echo(f"[ERROR] Forecast run failed: {exc}", err=True)
            raise typer.Exit(code=1)

    if not result.delivery.success:
        typer.echo(f"[ERROR] Forecast not sent: {result.delivery.error}", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"[OK] Forecast sent ({result.digest.ticker_count} ticker(s), "
        f"message_id={result.delivery.message_id})."
    )


@app.command("start-scheduler")
def start_scheduler(
    config_path: Optional[str] = _CONFIG_OPTION,
    run_now: bool = typer.Option(
        False, "--run-now", help="Send one forecast immediately before waiting."
    ),
) -> None:
    """Run the daily forecast on schedule until interrupted (Ctrl-C / SIGTERM).

    A failed ``--run-now`` run is reported and the daemon still starts.
    """
    from stock_forecaster.errors import ConfigError
    from stock_forecaster.pipeline.daily import build_daily_job
    from stock_forecaster.scheduler import SchedulerDaemon, describe_schedule

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if not config.email.recipients:
        typer.echo("[ERROR] No recipients configured ([email].recipients).", err=True)
        raise typer.Exit(code=1)

    try:
        job = build_daily_job(config, with_email=True)
    except ConfigError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    with job:
        sc = config.schedule
        daemon = SchedulerDaemon(
            job.run,
            send_time=sc.send_time,
            timezone=sc.timezone,
            weekdays_only=sc.weekdays_only,
        )
        typer.echo(f"Schedule:   {describe_schedule(sc.send_time, sc.timezone, sc.weekdays_only)}")
        typer.echo(f"Recipients: {', '.join(config.email.recipients)}")
        typer.echo(f"Next run:   {daemon.next_run.isoformat(timespec='minutes')}")

        if run_now:
            try:
                result = job.run()
            except Exception as exc:
                typer.echo(f"[ERROR] Immediate run failed: {exc}", err=True)
            else:
                if not result.delivery.success:
                    typer.echo(
                        f"[ERROR] Immediate forecast not sent: {result.delivery.error}",
                        err=True,
                    )
        daemon.start()


@app.command("status")
def status(config_path: Optional[str] = _CONFIG_OPTION) -> None:
    """Show what the scheduler would do and when it would next fire."""
    from zoneinfo import ZoneInfo

    from stock_forecaster.scheduler import describe_schedule, next_run_at

    config = _load_config_or_exit(config_path)
    sc = config.schedule
    tz = ZoneInfo(sc.timezone)
    nxt = next_run_at(sc.send_time, tz, datetime.now(tz), sc.weekdays_only)

    typer.echo("Stock Forecast Email Service")
    typer.echo(f"  Tickers:        {', '.join(t.symbol for t in config.tickers.as_tickers())}")
    typer.echo(f"  Recipients:     {', '.join(config.email.recipients) or '(none)'}")
    typer.echo(f"  Schedule:       {describe_schedule(sc.send_time, sc.timezone, sc.weekdays_only)}")
    typer.echo(f"  Next execution: {nxt.isoformat(timespec='minutes')}")
    typer.echo(f"  Market opens:   {config.pipeline.market_open_time}")


@app.command("probe-models")
def probe_models(
    config_path: Optional[str] = _CONFIG_OPTION,
    models: Optional[str] = typer.Option(
        None, "--models", help="Comma-separated model names (default: [provider].probe_models)."
    ),
) -> None:
    """Find the first Gemini model that answers with the configured API key."""
    from stock_forecaster.errors import ConfigError
    from stock_forecaster.ingestion.gemini_client import GeminiForecastClient

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    candidates = (
        [m.strip() for m in models.split(",") if m.strip()]
        if models
        else list(config.provider.probe_models)
    )
    try:
        client = GeminiForecastClient(
            api_key=config.provider.api_key,
            base_url=config.provider.base_url,
            timeout=config.provider.timeout_sec,
        )
    except ConfigError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Testing {len(candidates)} model(s): {', '.join(candidates)}")
    try:
        working = client.probe_models(candidates)
    finally:
        client.close()
    if working is None:
        typer.echo("[ERROR] No model responded.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] {working} works.")


if __name__ == "__main__":
    app()
