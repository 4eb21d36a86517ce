"""
Forecast-generation pipeline.

Modules:
  retry         — with_retry(): backoff on rate limiting, fallback otherwise
  orchestrator  — BatchOrchestrator: sequential quote → assess → accumulate
  digest        — assemble(): results + run metadata → Digest
  daily         — DailyForecastJob: generate then email (trigger entry point)
"""
