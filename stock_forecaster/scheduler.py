"""Scheduler daemon for the automated daily forecast email.

No external scheduler library is required — uses stdlib ``time``,
``signal`` and ``zoneinfo`` only.

Typical usage via the CLI::

    stock-forecaster start-scheduler

Or import directly::

    from stock_forecaster.scheduler import SchedulerDaemon
    daemon = SchedulerDaemon(job.run, send_time="08:30", timezone="America/New_York")
    daemon.start()  # blocks until Ctrl-C

The job fires once per day at *send_time* in *timezone* (weekdays only by
default — the 08:30 New York slot lands one hour before the 09:30 open).
The job runs inline in the daemon loop, so two scheduled runs can never
overlap. A failing run is logged with its traceback but does not stop the
daemon.
"""

from __future__ import annotations

import logging
import platform
import signal
import time
from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from stock_forecaster.utils.time_utils import parse_hhmm

log = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────────────────────


def next_run_at(
    send_time: str,
    tz: ZoneInfo,
    now: Optional[datetime] = None,
    weekdays_only: bool = True,
) -> datetime:
    """Return the next datetime in *tz* matching *send_time* (``HH:MM``).

    A slot equal to *now* counts as passed. Saturdays and Sundays are skipped
    when *weekdays_only* is set. Naive *now* values are taken to be in *tz*.
    """
    slot = parse_hhmm(send_time)
    current = now or datetime.now(tz)
    current = current.replace(tzinfo=tz) if current.tzinfo is None else current.astimezone(tz)

    candidate = current.replace(hour=slot.hour, minute=slot.minute, second=0, microsecond=0)
    if candidate <= current:
        candidate += timedelta(days=1)
    while weekdays_only and candidate.weekday() >= 5:
        candidate += timedelta(days=1)
    return candidate


def describe_schedule(send_time: str, timezone: str, weekdays_only: bool) -> str:
    """E.g. ``"08:30 America/New_York (Monday-Friday)"``."""
    days = "Monday-Friday" if weekdays_only else "daily"
    return f"{send_time} {timezone} ({days})"


# ── Daemon ────────────────────────────────────────────────────────────────────


class SchedulerDaemon:
    """Runs *job* once per (week)day at *send_time* in *timezone*.

    Parameters
    ----------
    job:
        Zero-argument callable, normally ``DailyForecastJob.run``.
    send_time:
        24-hour ``HH:MM`` local time in *timezone*. Defaults to ``"08:30"``.
    timezone:
        IANA zone name. Defaults to ``"America/New_York"``.
    weekdays_only:
        Skip Saturdays and Sundays.
    tick_sec:
        Seconds between due-checks in the main loop.
    sleep / clock:
        Injected for tests; default to ``time.sleep`` / ``datetime.now(tz)``.
    """

    def __init__(
        self,
        job: Callable[[], object],
        send_time: str = "08:30",
        timezone: str = "America/New_York",
        weekdays_only: bool = True,
        tick_sec: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.job = job
        self.send_time = send_time
        self.timezone = timezone
        self.tz = ZoneInfo(timezone)
        self.weekdays_only = weekdays_only
        self.tick_sec = tick_sec
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._running = False
        self.next_run: datetime = next_run_at(
            send_time, self.tz, self._clock(), weekdays_only
        )

    # ── Jobs ──────────────────────────────────────────────────────────────────

    def run_once_if_due(self) -> bool:
        """Run the job if its slot has arrived. Returns ``True`` if it ran."""
        now = self._clock()
        if now < self.next_run:
            return False

        log.info("=== Scheduled forecast run starting at %s ===", now.isoformat(timespec="seconds"))
        try:
            self.job()
        except Exception as exc:
            log.error("Scheduled run failed: %s", exc, exc_info=True)

        self.next_run = next_run_at(self.send_time, self.tz, self._clock(), self.weekdays_only)
        log.info("Next run scheduled: %s", self.next_run.isoformat(timespec="seconds"))
        return True

    # ── Main loop ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the daemon. Blocks until Ctrl-C (or SIGTERM on Linux/macOS)."""
        log.info(
            "Scheduler started. schedule=%s",
            describe_schedule(self.send_time, self.timezone, self.weekdays_only),
        )
        log.info("Next run: %s", self.next_run.isoformat(timespec="seconds"))

        self._running = True

        def _shutdown(signum, frame):  # noqa: ANN001
            log.info("Signal %d received — stopping scheduler.", signum)
            self._running = False

        signal.signal(signal.SIGINT, _shutdown)
        if platform.system() != "Windows":
            signal.signal(signal.SIGTERM, _shutdown)

        while self._running:
            self.run_once_if_due()
            if self._running:
                self._sleep(self.tick_sec)

        log.info("Scheduler stopped.")

    def stop(self) -> None:
        self._running = False
