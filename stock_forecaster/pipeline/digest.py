"""Digest assembly — pure packaging of ordered results plus run metadata."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from stock_forecaster.models.digest import Digest, TickerResult
from stock_forecaster.utils.time_utils import format_run_date, format_run_time


def assemble(
    results: Iterable[TickerResult],
    now: datetime,
    market_open_time: str,
) -> Digest:
    """Wrap ``results`` (order preserved) into a ``Digest`` stamped with ``now``.

    An empty ``results`` yields a valid, empty digest.
    """
    return Digest(
        run_date=format_run_date(now),
        run_time=format_run_time(now),
        market_open_time=market_open_time,
        results=tuple(results),
    )
