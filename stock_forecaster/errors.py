"""
Exception hierarchy.

Per-ticker failures are recovered inside the pipeline and never end a run:

  QuoteUnavailable       — quote fetch failed; the orchestrator skips the ticker.
  ForecastProviderError  — provider failure of kind OTHER; immediate fallback.
  RateLimited            — provider said "too many requests"; backoff, then fallback.

Everything else (``ConfigError``, ``DeliveryError``, unexpected exceptions)
belongs to the caller.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ProviderFailureKind(StrEnum):
    """How the retry policy should treat a provider failure."""

    RATE_LIMITED = "rate_limited"
    OTHER = "other"


class ForecasterError(Exception):
    """Base class for all stock_forecaster errors."""


class ConfigError(ForecasterError):
    """Required configuration (usually a credential) is missing or invalid."""


class QuoteUnavailable(ForecasterError):
    """No usable quote could be obtained for ``symbol``."""

    def __init__(self, symbol: str, reason: str) -> None:
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"Quote unavailable for {symbol}: {reason}")


class ForecastProviderError(ForecasterError):
    """The forecast provider failed to return a valid assessment."""

    kind: ProviderFailureKind = ProviderFailureKind.OTHER

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RateLimited(ForecastProviderError):
    """The provider rejected the call with HTTP 429."""

    kind = ProviderFailureKind.RATE_LIMITED

    def __init__(self, message: str = "Rate limit exceeded by provider") -> None:
        super().__init__(message, status_code=429)


class DeliveryError(ForecasterError):
    """The digest could not be handed to the mail server."""
