"""
Google Gemini client — the forecast provider.

API:   POST https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent
Auth:  ``x-goog-api-key`` header (GOOGLE_API_KEY in .env)

Request body::

    {"contents": [{"parts": [{"text": "<prompt>"}]}],
     "generationConfig": {"responseMimeType": "application/json"}}

The answer text lives at ``candidates[0].content.parts[0].text``. Models
often wrap JSON in a Markdown code fence even when asked not to, so the text
is passed through ``strip_code_fences()`` before parsing.

Failure classification (consumed by ``pipeline.retry.with_retry``):
  HTTP 429                       → ``RateLimited``
  anything else (transport, other status, bad JSON, wrong shape)
                                 → ``ForecastProviderError`` (kind OTHER)
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, ClassVar, Optional

import httpx
from pydantic import ValidationError

from stock_forecaster.errors import ConfigError, ForecastProviderError, RateLimited
from stock_forecaster.models.forecast import ForecastAssessment
from stock_forecaster.models.quote import QuoteSnapshot

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")

PROMPT_TEMPLATE = """You are an equity analyst preparing a pre-market briefing.

Ticker: {symbol} ({display_name})
Current price: ${current_price}
Previous close: ${previous_close}
Change: {percent_change}%
52-week high: {high_52w}
52-week low: {low_52w}

Based on this data and your knowledge of recent news, technicals and market
sentiment, give a forecast for today's trading session.

Respond with ONLY a JSON object of exactly this shape, no other text:
{{"recommendation": "BUY" | "SELL" | "HOLD",
  "price_target": {{"low": <number>, "high": <number>}},
  "key_insight": "<one or two sentences>"}}
"""


def build_prompt(symbol: str, display_name: str, snapshot: QuoteSnapshot) -> str:
    """Render the assessment prompt for one ticker."""
    return PROMPT_TEMPLATE.format(
        symbol=symbol,
        display_name=display_name,
        current_price=f"{snapshot.current_price:.2f}",
        previous_close=f"{snapshot.previous_close:.2f}",
        percent_change=snapshot.percent_change_display,
        high_52w=snapshot.fifty_two_week_high_display,
        low_52w=snapshot.fifty_two_week_low_display,
    )


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences and any prose around the JSON object.

    ``'```json\\n{"a": 1}\\n```'`` → ``'{"a": 1}'``
    """
    cleaned = _FENCE_RE.sub("", text).strip()
    # Keep only the outermost object; prose may sit before or after it.
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start : end + 1]
    return cleaned


def parse_assessment_text(text: str) -> ForecastAssessment:
    """Parse provider output into a ``ForecastAssessment``.

    Raises:
        ForecastProviderError: If the text is not the exact expected JSON shape.
    """
    cleaned = strip_code_fences(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ForecastProviderError(f"Provider returned invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ForecastProviderError("Provider JSON is not an object.")
    try:
        return ForecastAssessment.model_validate(payload)
    except ValidationError as exc:
        raise ForecastProviderError(
            f"Provider JSON failed validation: {exc.error_count()} error(s)"
        ) from exc


def extract_text(data: Any) -> str:
    """Return ``candidates[0].content.parts[0].text`` from a response body.

    Raises:
        ForecastProviderError: If the body has no text candidate.
    """
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        reason = None
        if isinstance(data, dict):
            feedback = data.get("promptFeedback")
            if isinstance(feedback, dict):
                reason = feedback.get("blockReason")
        suffix = f" (blocked: {reason})" if reason else ""
        raise ForecastProviderError(
            f"Provider response has no text candidate{suffix}."
        ) from None
    if not isinstance(text, str) or not text.strip():
        raise ForecastProviderError("Provider returned empty text.")
    return text


class GeminiForecastClient:
    """Requests one structured assessment per ``assess()`` call.

    Usage::

        client = GeminiForecastClient(api_key=os.environ["GOOGLE_API_KEY"])
        assessment = client.assess("MSFT", "Microsoft", snapshot)

    Args:
        api_key:  Gemini API key. Required.
        model:    Model name, e.g. ``"gemini-2.5-flash"``.
        base_url: API host. Default: ``BASE_URL``.
        timeout:  Per-request timeout in seconds.
        client:   Optional pre-built ``httpx.Client``.

    Raises:
        ConfigError: If ``api_key`` is empty.
    """

    BASE_URL: ClassVar[str] = "https://generativelanguage.googleapis.com"
    GENERATE_PATH: ClassVar[str] = "/v1beta/models/{model}:generateContent"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash",
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not api_key:
            raise ConfigError("GOOGLE_API_KEY must be set in .env to request forecasts.")
        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    # ── Public API ─────────────────────────────────────────────────────────────

    def assess(
        self,
        symbol: str,
        display_name: str,
        snapshot: QuoteSnapshot,
    ) -> ForecastAssessment:
        """Ask the model for an assessment of ``symbol``.

        Raises:
            RateLimited:           On HTTP 429.
            ForecastProviderError: On any other failure.
        """
        prompt = build_prompt(symbol, display_name, snapshot)
        text = self._generate(self.model, prompt, json_mode=True)
        assessment = parse_assessment_text(text)
        logger.debug(
            "Assessment %s: %s %s-%s",
            symbol, assessment.recommendation,
            assessment.price_target.low, assessment.price_target.high,
        )
        return assessment

    def probe_models(self, models: list[str]) -> Optional[str]:
        """Return the first model in ``models`` that answers a trivial prompt.

        Each failure is logged and the next model tried; ``None`` if none work.
        """
        for name in models:
            try:
                reply = self._generate(name, "Say hello", json_mode=False)
            except ForecastProviderError as exc:
                logger.warning("Model %s failed: %s", name, exc)
                continue
            logger.info("Model %s works. Response: %s", name, reply.strip()[:200])
            return name
        return None

    def close(self) -> None:
        self._client.close()

    # ── Transport ──────────────────────────────────────────────────────────────

    def _generate(self, model: str, prompt: str, json_mode: bool) -> str:
        body: dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if json_mode:
            body["generationConfig"] = {"responseMimeType": "application/json"}

        url = self.base_url + self.GENERATE_PATH.format(model=model)
        try:
            resp = self._client.post(
                url,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "x-goog-api-key": self.api_key,
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise ForecastProviderError(f"Transport error: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimited()
        if resp.status_code >= 400:
            raise ForecastProviderError(
                f"Provider error {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ForecastProviderError("Provider response is not valid JSON.") from exc
        return extract_text(data)
