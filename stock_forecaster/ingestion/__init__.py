"""
Ingestion layer — the two outbound HTTP collaborators of the pipeline.

Submodules:
  quote_client   — Yahoo Finance chart endpoint → QuoteSnapshot
  gemini_client  — Gemini generateContent → ForecastAssessment

Credential placement (.env, gitignored):
  GOOGLE_API_KEY   — Gemini API key (quotes need no credentials)
"""
