"""
Yahoo Finance chart client — the quote source.

API:   https://query1.finance.yahoo.com/v8/finance/chart/{symbol}
Auth:  none (public endpoint; a browser-like User-Agent avoids 403s)

Fields read from ``chart.result[0].meta``::

    regularMarketPrice   → current_price        (required)
    previousClose        → previous_close       (required; falls back to
    chartPreviousClose                             chartPreviousClose)
    fiftyTwoWeekHigh     → fifty_two_week_high  (optional)
    fiftyTwoWeekLow      → fifty_two_week_low   (optional)

Every failure mode — transport error, non-2xx, malformed JSON, missing
required field — surfaces as ``QuoteUnavailable``. The client never retries;
the orchestrator skips the ticker instead.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional

import httpx

from stock_forecaster.errors import QuoteUnavailable
from stock_forecaster.models.quote import QuoteSnapshot, to_decimal

logger = logging.getLogger(__name__)


def _optional_number(meta: dict[str, Any], key: str) -> Optional[Any]:
    """Return ``meta[key]`` if it is a usable number, else ``None``."""
    value = meta.get(key)
    if value is None or isinstance(value, bool):
        return None
    try:
        to_decimal(value)
    except ValueError:
        return None
    return value


def parse_chart_payload(symbol: str, data: Any) -> QuoteSnapshot:
    """Turn a ``/v8/finance/chart`` JSON body into a ``QuoteSnapshot``.

    Raises:
        QuoteUnavailable: If the payload lacks the required prices.
    """
    try:
        meta = data["chart"]["result"][0]["meta"]
    except (KeyError, IndexError, TypeError):
        chart = data.get("chart") if isinstance(data, dict) else None
        error = chart.get("error") if isinstance(chart, dict) else None
        detail = error.get("description") if isinstance(error, dict) else None
        raise QuoteUnavailable(symbol, detail or "response has no chart result") from None

    if not isinstance(meta, dict):
        raise QuoteUnavailable(symbol, "chart meta is not an object")

    current = _optional_number(meta, "regularMarketPrice")
    previous = _optional_number(meta, "previousClose")
    if previous is None:
        previous = _optional_number(meta, "chartPreviousClose")

    if current is None:
        raise QuoteUnavailable(symbol, "missing current price")
    if previous is None or to_decimal(previous) <= 0:
        raise QuoteUnavailable(symbol, "missing previous close")

    try:
        return QuoteSnapshot.from_prices(
            current_price=current,
            previous_close=previous,
            fifty_two_week_high=_optional_number(meta, "fiftyTwoWeekHigh"),
            fifty_two_week_low=_optional_number(meta, "fiftyTwoWeekLow"),
        )
    except ValueError as exc:
        raise QuoteUnavailable(symbol, str(exc)) from exc


class QuoteClient:
    """Fetches one point-in-time quote per call.

    Usage::

        client = QuoteClient()
        snapshot = client.fetch_quote("MSFT")

    Args:
        base_url:   Chart API host. Default: ``BASE_URL``.
        timeout:    Per-request timeout in seconds.
        user_agent: ``User-Agent`` header sent with each request.
        client:     Optional pre-built ``httpx.Client`` (tests pass one backed
                    by ``httpx.MockTransport``).
    """

    BASE_URL: ClassVar[str] = "https://query1.finance.yahoo.com"
    CHART_PATH: ClassVar[str] = "/v8/finance/chart/{symbol}"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        user_agent: str = "Mozilla/5.0 (compatible; stock-forecaster/0.1)",
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self._client = client or httpx.Client(timeout=timeout)

    def fetch_quote(self, symbol: str) -> QuoteSnapshot:
        """Fetch the current quote for ``symbol``.

        Raises:
            QuoteUnavailable: On any transport, status, or payload problem.
        """
        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise QuoteUnavailable(symbol, "empty ticker symbol")

        url = self.base_url + self.CHART_PATH.format(symbol=symbol)
        try:
            resp = self._client.get(
                url,
                params={"interval": "1d", "range": "1d"},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise QuoteUnavailable(
                symbol, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise QuoteUnavailable(symbol, f"transport error: {exc}") from exc
        except ValueError as exc:
            raise QuoteUnavailable(symbol, "response is not valid JSON") from exc

        snapshot = parse_chart_payload(symbol, data)
        logger.debug(
            "Quote %s: price=%s prev=%s change=%s%%",
            symbol, snapshot.current_price, snapshot.previous_close,
            snapshot.percent_change_display,
        )
        return snapshot

    def close(self) -> None:
        self._client.close()
