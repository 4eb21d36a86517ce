"""Ticker value object. Identity is the symbol alone."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class Ticker(BaseModel):
    """A tradable asset identifier plus the name shown in the digest.

    Attributes:
        symbol:       Exchange symbol, stored upper-case (e.g. ``"MSFT"``).
        display_name: Human-readable name; defaults to the symbol.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    display_name: str = ""

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be empty.")
        return v

    @model_validator(mode="after")
    def default_display_name(self) -> "Ticker":
        if not self.display_name.strip():
            object.__setattr__(self, "display_name", self.symbol)
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ticker):
            return NotImplemented
        return self.symbol == other.symbol

    def __hash__(self) -> int:
        return hash(self.symbol)

    def __str__(self) -> str:
        return f"{self.symbol} ({self.display_name})"
