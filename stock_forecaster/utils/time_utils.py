"""
Time helpers for digest metadata and scheduling.

Display formats follow US conventions::

    format_run_date(dt)  -> "Monday, October 19, 2026"
    format_run_time(dt)  -> "8:30:05 AM"

``%-I`` / ``%-d`` are avoided because they are not portable to Windows.
"""

from __future__ import annotations

from datetime import datetime, time


def format_run_date(dt: datetime) -> str:
    """Long weekday/month date, e.g. ``"Monday, October 19, 2026"``."""
    return f"{dt:%A, %B} {dt.day}, {dt.year}"


def format_run_time(dt: datetime) -> str:
    """12-hour clock time with seconds, e.g. ``"8:30:05 AM"``."""
    hour = dt.hour % 12 or 12
    return f"{hour}:{dt:%M:%S %p}"


def parse_hhmm(value: str) -> time:
    """Parse a 24-hour ``"HH:MM"`` string.

    Raises:
        ValueError: If the string is not a valid clock time.
    """
    try:
        hour_s, minute_s = value.strip().split(":")
        return time(int(hour_s), int(minute_s))
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Expected HH:MM, got '{value}'.") from exc
