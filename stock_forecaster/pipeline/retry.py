"""
Retry/backoff policy around a single forecast-provider call.

``with_retry()`` is total: it always returns an ``AssessmentOutcome``.

  RateLimited, attempts left  → sleep(attempt * base_delay), try again
                                (5 s, 10 s, 15 s, ... with the defaults)
  RateLimited, last attempt   → fallback, no further sleep
  any other provider failure  → fallback immediately, zero sleeps

The fallback is a HOLD with a ±5 band around the current price (low floored
at zero) and a fixed degraded-service message, so downstream code never has
to handle a missing assessment.

Exceptions that are not ``ForecastProviderError`` are programming errors and
propagate.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from stock_forecaster.errors import ForecastProviderError, ProviderFailureKind
from stock_forecaster.models.forecast import ForecastAssessment, PriceTarget, Recommendation
from stock_forecaster.models.quote import QuoteSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SEC = 5.0
FALLBACK_BAND = Decimal("5")
FALLBACK_INSIGHT = (
    "AI analysis is temporarily unavailable. "
    "Showing a neutral HOLD range around the current price; check the stock manually."
)


@dataclass(frozen=True)
class AssessmentOutcome:
    """Result of ``with_retry()``.

    Attributes:
        assessment: Provider assessment, or the fallback when ``degraded``.
        attempts:   Provider calls made.
        waits:      Backoff sleeps performed, in seconds, in order.
        retried:    True when more than one call was made.
        degraded:   True when ``assessment`` is the fallback.
    """

    assessment: ForecastAssessment
    attempts: int
    waits: tuple[float, ...] = ()
    retried: bool = False
    degraded: bool = False


def build_fallback_assessment(current_price: Decimal) -> ForecastAssessment:
    """HOLD with ``low = max(0, price - 5)`` and ``high = price + 5``."""
    return ForecastAssessment(
        recommendation=Recommendation.HOLD,
        price_target=PriceTarget(
            low=max(Decimal("0"), current_price - FALLBACK_BAND),
            high=current_price + FALLBACK_BAND,
        ),
        key_insight=FALLBACK_INSIGHT,
    )


def with_retry(
    assess_fn: Callable[[], ForecastAssessment],
    snapshot: QuoteSnapshot,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY_SEC,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "",
    log_context: Optional[Mapping[str, Any]] = None,
) -> AssessmentOutcome:
    """Call ``assess_fn`` with linear backoff on rate limiting.

    Args:
        assess_fn:    Zero-argument callable performing one provider call.
        snapshot:     Quote the fallback band is centred on.
        max_attempts: Upper bound on provider calls (>= 1).
        base_delay:   Seconds multiplied by the attempt number for each wait.
        sleep:        Wait function; tests inject a recorder.
        label:        Ticker symbol for log lines.
        log_context:  Extra fields (e.g. ``run_id``) added to every log record.

    Returns:
        ``AssessmentOutcome`` — never raises for provider failures.

    Raises:
        ValueError: If ``max_attempts < 1``.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}.")

    waits: list[float] = []
    attempt = 0
    while True:
        attempt += 1
        extra = {
            **(log_context or {}),
            "symbol": label or None,
            "attempt": attempt,
            "max_attempts": max_attempts,
        }
        try:
            assessment = assess_fn()
        except ForecastProviderError as exc:
            if exc.kind is ProviderFailureKind.RATE_LIMITED and attempt < max_attempts:
                delay = attempt * base_delay
                logger.warning(
                    "[%s] Rate limited (attempt %d/%d); retrying in %.1fs",
                    label, attempt, max_attempts, delay,
                    extra={**extra, "delay_sec": delay},
                )
                sleep(delay)
                waits.append(delay)
                continue

            if exc.kind is ProviderFailureKind.RATE_LIMITED:
                logger.error(
                    "[%s] Still rate limited after %d attempt(s); using fallback assessment",
                    label, attempt,
                    extra=extra,
                )
            else:
                logger.error(
                    "[%s] Forecast provider failed: %s; using fallback assessment",
                    label, exc,
                    extra=extra,
                )
            return AssessmentOutcome(
                assessment=build_fallback_assessment(snapshot.current_price),
                attempts=attempt,
                waits=tuple(waits),
                retried=attempt > 1,
                degraded=True,
            )

        if attempt > 1:
            logger.info(
                "[%s] Assessment succeeded on attempt %d", label, attempt, extra=extra
            )
        return AssessmentOutcome(
            assessment=assessment,
            attempts=attempt,
            waits=tuple(waits),
            retried=attempt > 1,
            degraded=False,
        )
