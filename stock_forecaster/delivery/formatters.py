"""
Digest formatters — email subject, plain-text body, HTML body, CLI table.

All formatters accept a ``Digest`` and return plain strings. The HTML body
uses inline ``<style>`` only (no template engine) and escapes every
interpolated value, since ``key_insight`` is free text from the provider.

Degraded results (fallback assessments) are flagged in every format so a
reader never mistakes the neutral HOLD band for a real forecast.
"""

from __future__ import annotations

from html import escape

from stock_forecaster.models.digest import Digest, TickerResult

DISCLAIMER = (
    "This forecast is for informational purposes only and should not be "
    "considered financial advice. Always do your own research and consult "
    "with a financial advisor before making investment decisions."
)
EMPTY_NOTICE = "No quotes were available for this run; no forecasts to report."
DEGRADED_TAG = "[fallback]"

_REC_COLOURS = {"BUY": "#10b981", "SELL": "#ef4444", "HOLD": "#f59e0b"}


# ── Subject ──────────────────────────────────────────────────────────────────


def format_subject(digest: Digest, prefix: str = "") -> str:
    """``"Stock Forecast - <date>"``; single-ticker digests name the symbol."""
    if digest.ticker_count == 1:
        title = f"{digest.results[0].ticker.symbol} Stock Forecast"
    else:
        title = "Stock Forecast"
    subject = f"{title} - {digest.run_date}"
    return f"{prefix.strip()} {subject}" if prefix.strip() else subject


# ── Plain text ───────────────────────────────────────────────────────────────


def _text_block(result: TickerResult) -> list[str]:
    q, a = result.quote, result.assessment
    tag = f" {DEGRADED_TAG}" if result.degraded else ""
    return [
        f"{result.ticker.symbol} - {result.ticker.display_name}{tag}",
        f"  Price:          ${q.current_price:.2f} ({q.percent_change_display}%)",
        f"  Previous close: ${q.previous_close:.2f}",
        f"  52-week range:  {q.fifty_two_week_low_display} - {q.fifty_two_week_high_display}",
        f"  Recommendation: {a.recommendation}",
        f"  Price target:   ${a.price_target.low:.2f} - ${a.price_target.high:.2f}",
        f"  Key insight:    {a.key_insight}",
    ]


def format_digest_text(digest: Digest) -> str:
    """Plain-text email body (the ``text/plain`` alternative)."""
    lines = [
        f"Stock Forecast - {digest.run_date}",
        "",
        f"Market opens: {digest.market_open_time}",
        "",
    ]
    if digest.is_empty:
        lines.append(EMPTY_NOTICE)
    for result in digest.results:
        lines.extend(_text_block(result))
        lines.append("")
    lines.append(f"Disclaimer: {DISCLAIMER}")
    lines.append("")
    lines.append(f"Generated at {digest.run_time}")
    return "\n".join(lines)


# ── HTML ─────────────────────────────────────────────────────────────────────

_HTML_HEAD = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
  body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
  .container { max-width: 640px; margin: 0 auto; padding: 20px; }
  .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; border-radius: 10px 10px 0 0; }
  .header h1 { margin: 0; font-size: 28px; }
  .content { background: #f9fafb; padding: 30px; border-radius: 0 0 10px 10px; }
  .card { background: white; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #667eea; }
  .card.degraded { border-left-color: #9ca3af; }
  .rec { color: white; padding: 4px 12px; border-radius: 6px; font-weight: bold; }
  .info-box { background: #e0e7ff; padding: 15px; border-radius: 8px; margin: 15px 0; }
  .market-time { background: #10b981; color: white; padding: 6px 14px; border-radius: 8px; font-weight: bold; }
  .footer { text-align: center; margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; color: #666; font-size: 12px; }
  td { padding: 2px 12px 2px 0; }
</style>
</head>
"""


def _html_card(result: TickerResult) -> str:
    q, a = result.quote, result.assessment
    rec = str(a.recommendation)
    colour = _REC_COLOURS.get(rec, "#667eea")
    css = "card degraded" if result.degraded else "card"
    note = (
        f'<p><em>{escape(DEGRADED_TAG)} AI assessment unavailable for this ticker.</em></p>'
        if result.degraded
        else ""
    )
    return f"""
<div class="{css}">
  <h2 style="margin-top: 0;">{escape(result.ticker.symbol)} &middot; {escape(result.ticker.display_name)}
    <span class="rec" style="background: {colour};">{escape(rec)}</span></h2>
  <table>
    <tr><td>Price</td><td>${q.current_price:.2f} ({escape(q.percent_change_display)}%)</td></tr>
    <tr><td>Previous close</td><td>${q.previous_close:.2f}</td></tr>
    <tr><td>52-week range</td><td>{escape(q.fifty_two_week_low_display)} &ndash; {escape(q.fifty_two_week_high_display)}</td></tr>
    <tr><td>Price target</td><td>${a.price_target.low:.2f} &ndash; ${a.price_target.high:.2f}</td></tr>
  </table>
  <p><strong>Key insight:</strong> {escape(a.key_insight)}</p>
  {note}
</div>"""


def format_digest_html(digest: Digest) -> str:
    """HTML email body (the ``text/html`` alternative)."""
    if digest.is_empty:
        cards = f'<div class="card"><p>{escape(EMPTY_NOTICE)}</p></div>'
    else:
        cards = "".join(_html_card(r) for r in digest.results)
    return (
        _HTML_HEAD
        + f"""<body>
<div class="container">
  <div class="header">
    <h1>Daily Stock Forecast</h1>
    <p>{escape(digest.run_date)}</p>
  </div>
  <div class="content">
    <div class="info-box">
      <strong>Market Opens:</strong> <span class="market-time">{escape(digest.market_open_time)}</span>
    </div>
    {cards}
    <div class="info-box"><strong>Disclaimer:</strong> {escape(DISCLAIMER)}</div>
    <div class="footer">
      <p>Generated automatically at {escape(digest.run_time)}</p>
      <p>Stock Forecast Service</p>
    </div>
  </div>
</div>
</body>
</html>
"""
    )


# ── CLI table ────────────────────────────────────────────────────────────────


def format_digest_table(digest: Digest) -> str:
    """ASCII table for ``stock-forecaster test-forecast``::

        Symbol     Price  Change%   Action        Low       High  Note
        ---------------------------------------------------------------
        MSFT      412.30     1.25      BUY     405.00     420.00
    """
    lines = [
        "",
        f"=== Stock Forecast | {digest.run_date} {digest.run_time} ===",
        f"  Market opens: {digest.market_open_time}",
        "",
    ]
    if digest.is_empty:
        lines.append(f"  ({EMPTY_NOTICE})")
        return "\n".join(lines)

    header = (
        f"  {'Symbol':<8}  {'Price':>10}  {'Change%':>8}  {'Action':>6}  "
        f"{'Low':>10}  {'High':>10}  Note"
    )
    lines.append(header)
    lines.append("  " + "-" * (len(header) + 8))
    for r in digest.results:
        note = DEGRADED_TAG if r.degraded else (f"retried x{r.attempts - 1}" if r.retried else "")
        lines.append(
            f"  {r.ticker.symbol:<8}  {r.quote.current_price:>10.2f}  "
            f"{r.quote.percent_change_display:>8}  {str(r.assessment.recommendation):>6}  "
            f"{r.assessment.price_target.low:>10.2f}  {r.assessment.price_target.high:>10.2f}  "
            f"{note}".rstrip()
        )
    lines.append("")
    for r in digest.results:
        lines.append(f"  {r.ticker.symbol}: {r.assessment.key_insight}")
    return "\n".join(lines)
