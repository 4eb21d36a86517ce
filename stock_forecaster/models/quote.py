"""
Point-in-time price snapshot for one ticker.

Every quantity is a ``Decimal`` quantized to two places so the digest
shows exactly what was computed. ``percent_change`` is derived from the
raw upstream prices *before* rounding::

    percent_change = (current_price - previous_close) / previous_close * 100

The 52-week fields are optional: an upstream that omits them yields
``None``, which renders as ``NA_PLACEHOLDER`` rather than a numeric default.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

NA_PLACEHOLDER = "N/A"
TWO_PLACES = Decimal("0.01")

Number = Union[Decimal, float, int, str]


def to_decimal(value: Number) -> Decimal:
    """Convert ``value`` to ``Decimal`` without binary-float artefacts.

    Raises:
        ValueError: If the value is not a finite number.
    """
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def quantize_2dp(value: Number) -> Decimal:
    """Round half-up to two decimal places, normalising ``-0.00`` to ``0.00``."""
    q = to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return q if q != 0 else Decimal("0.00")


def compute_percent_change(current_price: Number, previous_close: Number) -> Decimal:
    """Percent change from ``previous_close`` to ``current_price``, 2 dp.

    Raises:
        ValueError: If ``previous_close`` is zero.
    """
    current = to_decimal(current_price)
    previous = to_decimal(previous_close)
    if previous == 0:
        raise ValueError("previous_close must be non-zero.")
    return quantize_2dp((current - previous) / previous * 100)


def format_price(value: Optional[Decimal]) -> str:
    """Two-decimal display string, or ``"N/A"`` for a missing value."""
    if value is None:
        return NA_PLACEHOLDER
    return f"{value:.2f}"


class QuoteSnapshot(BaseModel):
    """Immutable price read for a single ticker.

    Build it with :meth:`from_prices` so the derived ``percent_change`` is
    always consistent with the two prices.

    Attributes:
        current_price:       Last traded price.
        previous_close:      Prior session close.
        percent_change:      Derived change in percent (2 dp).
        fifty_two_week_high: 52-week high, ``None`` when unavailable.
        fifty_two_week_low:  52-week low, ``None`` when unavailable.
    """

    model_config = ConfigDict(frozen=True)

    current_price: Decimal
    previous_close: Decimal
    percent_change: Decimal
    fifty_two_week_high: Optional[Decimal] = None
    fifty_two_week_low: Optional[Decimal] = None

    @model_validator(mode="after")
    def validate_prices(self) -> "QuoteSnapshot":
        if self.current_price < 0:
            raise ValueError("current_price must be non-negative.")
        if self.previous_close <= 0:
            raise ValueError("previous_close must be positive.")
        return self

    @classmethod
    def from_prices(
        cls,
        current_price: Number,
        previous_close: Number,
        fifty_two_week_high: Optional[Number] = None,
        fifty_two_week_low: Optional[Number] = None,
    ) -> "QuoteSnapshot":
        """Build a snapshot, deriving ``percent_change`` from the raw prices."""
        return cls(
            current_price=quantize_2dp(current_price),
            previous_close=quantize_2dp(previous_close),
            percent_change=compute_percent_change(current_price, previous_close),
            fifty_two_week_high=(
                quantize_2dp(fifty_two_week_high) if fifty_two_week_high is not None else None
            ),
            fifty_two_week_low=(
                quantize_2dp(fifty_two_week_low) if fifty_two_week_low is not None else None
            ),
        )

    @property
    def percent_change_display(self) -> str:
        """E.g. ``"5.00"`` or ``"-5.00"``."""
        return f"{self.percent_change:.2f}"

    @property
    def fifty_two_week_high_display(self) -> str:
        return format_price(self.fifty_two_week_high)

    @property
    def fifty_two_week_low_display(self) -> str:
        return format_price(self.fifty_two_week_low)
