"""
Logging setup for the Stock Forecaster.

Call ``configure_logging(config)`` once at CLI entry (before any pipeline
work). Library modules only use ``logging.getLogger(__name__)``.

Pipeline log calls tag their records through ``extra=`` with the context
fields in ``LOG_CONTEXT_FIELDS``, so one batch run (``run_id``) or one ticker
(``symbol``) can be followed through the log::

    logger.warning("Rate limited", extra={"run_id": run_id, "symbol": "AAPL",
                                           "attempt": 1, "delay_sec": 5.0})

Text format appends the fields after the message::

    2026-10-19T12:30:00Z [WARNING] stock_forecaster.pipeline.retry: Rate limited | run_id=3f9c2a1b symbol=AAPL attempt=1 delay_sec=5.0

JSON format (``json_format = true`` in config/default.toml [logging]) puts
them at the top level::

    {"ts": "...", "level": "WARNING", "logger": "...", "msg": "Rate limited",
     "run_id": "3f9c2a1b", "symbol": "AAPL", "attempt": 1, "delay_sec": 5.0}
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stock_forecaster.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Emitted in this order when present on a record.
LOG_CONTEXT_FIELDS: tuple[str, ...] = (
    "run_id",
    "symbol",
    "attempt",
    "max_attempts",
    "delay_sec",
)


def context_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Pipeline context attached to ``record`` via ``extra=``, in field order."""
    return {
        name: getattr(record, name)
        for name in LOG_CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class _ContextFormatter(logging.Formatter):
    """Standard text line plus ``| key=value ...`` for any context fields."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = context_fields(record)
        if not fields:
            return line
        tail = " ".join(f"{key}={val}" for key, val in fields.items())
        # Keep a traceback (if any) below the tagged first line.
        head, sep, rest = line.partition("\n")
        return f"{head} | {tail}{sep}{rest}"


class _JsonFormatter(logging.Formatter):
    """One JSON object per line: ``ts``, ``level``, ``logger``, ``msg``, context fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                LOG_DATE_FORMAT
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(context_fields(record))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return _JsonFormatter()
    return _ContextFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def configure_logging(config: "LoggingConfig") -> None:
    """Configure the root logger: stdout handler, optional log file, chosen format."""
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = build_formatter(config.json_format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Request lines from the HTTP stack would drown out the per-ticker log.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
