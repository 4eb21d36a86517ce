"""
Domain models — all frozen pydantic models.

Modules:
  ticker    — Ticker (symbol + display name)
  quote     — QuoteSnapshot (two-decimal price read)
  forecast  — Recommendation, PriceTarget, ForecastAssessment
  digest    — TickerResult, Digest (per-run output)
"""
