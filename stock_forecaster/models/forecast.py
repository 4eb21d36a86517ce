"""
Forecast assessment models.

``ForecastAssessment`` is the exact three-field shape the provider must
return::

    {
      "recommendation": "BUY" | "SELL" | "HOLD",
      "price_target": {"low": 225.0, "high": 240.0},
      "key_insight": "one or two sentences"
    }

Extra keys are rejected so a drifting provider response is a parse failure
rather than silently accepted. Both models are frozen.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from stock_forecaster.models.quote import quantize_2dp


class Recommendation(StrEnum):
    """Trading stance for the coming session."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class PriceTarget(BaseModel):
    """Expected trading range; ``0 <= low <= high``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    low: Decimal
    high: Decimal

    @field_validator("low", "high", mode="after")
    @classmethod
    def round_to_cents(cls, v: Decimal) -> Decimal:
        return quantize_2dp(v)

    @model_validator(mode="after")
    def validate_range(self) -> "PriceTarget":
        if self.low < 0:
            raise ValueError("price_target.low must be non-negative.")
        if self.low > self.high:
            raise ValueError(
                f"price_target.low ({self.low}) must be <= price_target.high ({self.high})."
            )
        return self


class ForecastAssessment(BaseModel):
    """Structured recommendation for one ticker.

    Attributes:
        recommendation: BUY, SELL or HOLD (input is case-insensitive).
        price_target:   Expected low/high for the session.
        key_insight:    Short rationale, stripped of surrounding whitespace.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    recommendation: Recommendation
    price_target: PriceTarget
    key_insight: str

    @field_validator("recommendation", mode="before")
    @classmethod
    def normalise_recommendation(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("key_insight")
    @classmethod
    def validate_key_insight(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("key_insight must not be empty.")
        return v.strip()
