"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``STOCK_FORECASTER_*`` prefix

Secrets are never read from TOML:
  GOOGLE_API_KEY   — Gemini API key (forecast provider)
  EMAIL_USER       — SMTP login, also used as the sender address
  EMAIL_PASSWORD   — SMTP password (Gmail: an App Password)

Entry point: ``load_config(config_path=None) -> AppConfig``

Every CLI command and the scheduler receive an ``AppConfig`` instance —
never raw dicts or individual env var lookups scattered through the codebase.
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from stock_forecaster.models.ticker import Ticker

_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


# ── Sub-config models ─────────────────────────────────────────────────────────


class WatchlistEntry(BaseModel):
    """One ``[[tickers.watchlist]]`` table."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    display_name: str = ""


class TickersConfig(BaseModel):
    """Which tickers a run covers.

    When ``watchlist`` is empty the service runs in single-asset mode on the
    implicit ``symbol`` / ``display_name`` pair.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = "MSFT"
    display_name: str = "Microsoft"
    watchlist: list[WatchlistEntry] = []

    def as_tickers(self) -> tuple[Ticker, ...]:
        """Return the ordered ticker list, de-duplicated by symbol."""
        if not self.watchlist:
            return (Ticker(symbol=self.symbol, display_name=self.display_name),)

        seen: set[str] = set()
        out: list[Ticker] = []
        for entry in self.watchlist:
            ticker = Ticker(symbol=entry.symbol, display_name=entry.display_name)
            if ticker.symbol in seen:
                continue
            seen.add(ticker.symbol)
            out.append(ticker)
        return tuple(out)


class PipelineConfig(BaseModel):
    """Forecast pipeline pacing and retry parameters."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = 3
    base_delay_sec: float = 5.0
    inter_item_delay_sec: float = 5.0
    market_open_time: str = "9:30 AM EST"

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempts must be >= 1, got {v}.")
        return v

    @field_validator("base_delay_sec", "inter_item_delay_sec")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"delays must be non-negative, got {v}.")
        return v


class QuotesConfig(BaseModel):
    """Market-data endpoint settings."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://query1.finance.yahoo.com"
    timeout_sec: float = 10.0
    user_agent: str = "Mozilla/5.0 (compatible; stock-forecaster/0.1)"


class ProviderConfig(BaseModel):
    """Gemini forecast provider settings. ``api_key`` comes from GOOGLE_API_KEY."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://generativelanguage.googleapis.com"
    model: str = "gemini-2.5-flash"
    timeout_sec: float = 60.0
    probe_models: list[str] = [
        "gemini-2.5-flash",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-pro",
    ]
    api_key: Optional[str] = None


class EmailConfig(BaseModel):
    """SMTP delivery settings. Credentials come from EMAIL_USER / EMAIL_PASSWORD."""

    model_config = ConfigDict(frozen=True)

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    use_starttls: bool = True
    recipients: list[str] = []
    subject_prefix: str = ""
    username: Optional[str] = None
    password: Optional[str] = None

    @field_validator("recipients")
    @classmethod
    def validate_recipients(cls, v: list[str]) -> list[str]:
        cleaned = [r.strip() for r in v if r.strip()]
        for r in cleaned:
            if "@" not in r:
                raise ValueError(f"Invalid recipient address '{r}'.")
        return cleaned


class ScheduleConfig(BaseModel):
    """When the scheduler daemon fires the daily job."""

    model_config = ConfigDict(frozen=True)

    send_time: str = "08:30"
    timezone: str = "America/New_York"
    weekdays_only: bool = True

    @field_validator("send_time")
    @classmethod
    def validate_send_time(cls, v: str) -> str:
        if not _HHMM_RE.match(v.strip()):
            raise ValueError(f"send_time must be HH:MM (24h), got '{v}'.")
        return v.strip()

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{v}'.") from exc
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/forecaster.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth."""

    model_config = ConfigDict(frozen=True)

    tickers: TickersConfig = TickersConfig()
    pipeline: PipelineConfig = PipelineConfig()
    quotes: QuotesConfig = QuotesConfig()
    provider: ProviderConfig = ProviderConfig()
    email: EmailConfig = EmailConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply STOCK_FORECASTER_* overrides and secrets
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def parse_ticker_list(raw: str) -> list[dict[str, str]]:
    """Parse ``"AAPL:Apple,MSFT"`` into watchlist dicts.

    The display name defaults to the symbol when omitted.
    """
    entries: list[dict[str, str]] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        symbol, _, name = part.partition(":")
        symbol = symbol.strip()
        if not symbol:
            continue
        entries.append({"symbol": symbol, "display_name": name.strip() or symbol.upper()})
    return entries


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply STOCK_FORECASTER_* env vars and secrets to the raw config dict.

    Supported overrides:
      STOCK_FORECASTER_LOG_LEVEL   → raw["logging"]["level"]
      STOCK_FORECASTER_DEBUG       → raw["debug"]
      STOCK_FORECASTER_TICKERS     → raw["tickers"]["watchlist"]
      STOCK_FORECASTER_RECIPIENTS  → raw["email"]["recipients"]
    """
    if log_level := os.environ.get("STOCK_FORECASTER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("STOCK_FORECASTER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    if tickers := os.environ.get("STOCK_FORECASTER_TICKERS"):
        raw.setdefault("tickers", {})["watchlist"] = parse_ticker_list(tickers)

    if recipients := os.environ.get("STOCK_FORECASTER_RECIPIENTS"):
        raw.setdefault("email", {})["recipients"] = [
            r.strip() for r in recipients.split(",") if r.strip()
        ]

    if api_key := os.environ.get("GOOGLE_API_KEY"):
        raw.setdefault("provider", {})["api_key"] = api_key

    if user := os.environ.get("EMAIL_USER"):
        raw.setdefault("email", {})["username"] = user

    if password := os.environ.get("EMAIL_PASSWORD"):
        raw.setdefault("email", {})["password"] = password

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        tickers=TickersConfig(**raw.get("tickers", {})),
        pipeline=PipelineConfig(**raw.get("pipeline", {})),
        quotes=QuotesConfig(**raw.get("quotes", {})),
        provider=ProviderConfig(**raw.get("provider", {})),
        email=EmailConfig(**raw.get("email", {})),
        schedule=ScheduleConfig(**raw.get("schedule", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
