"""Optional LLM market commentary via OpenRouter's chat completions API.

The advisory layer is strictly best effort: a missing key, an HTTP error or
an unparseable reply all produce ``NO_DATA_ADVISORY`` instead of raising.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Literal, Mapping, Protocol, Sequence, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict

from market_sentinel.core.config import AdvisoryConfig
from market_sentinel.core.exceptions import AdvisoryError
from market_sentinel.core.models import IndicatorSet, QuoteRecord, Symbol

logger = logging.getLogger("market_sentinel.runtime.advisory")

Sentiment = Literal["BULLISH", "BEARISH", "NEUTRAL"]

MAX_SIGNALS = 5
DEFAULT_CONFIDENCE = 50

SYSTEM_PROMPT = (
    "You are a professional intraday trader specializing in Indian index "
    "markets (Nifty, Bank Nifty, Sensex). You analyze market data and "
    "technical indicators and give actionable signals with entry, target "
    "and stop-loss levels and the reasoning behind them. Respond in JSON."
)

ANALYSIS_PROMPT_TEMPLATE = """Analyze the current Indian market conditions and provide trading signals.

MARKET DATA:
{market_lines}

TECHNICAL INDICATORS:
{indicators}

Return the response in exactly this JSON format:
{{
  "sentiment": "BULLISH|BEARISH|NEUTRAL",
  "confidence": 0-100,
  "signals": [
    {{
      "type": "BUY|SELL",
      "instrument": "NIFTY",
      "entryPrice": 0.0,
      "targetPrice": 0.0,
      "stopLoss": 0.0,
      "reasoning": "Technical analysis reasoning"
    }}
  ],
  "marketInsights": "Current market analysis and key levels",
  "recommendations": "Strategy recommendations for today"
}}"""


class AdvisoryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    sentiment: Sentiment = "NEUTRAL"
    confidence: int = 0
    signals: list[dict[str, Any]] = []
    text: str = ""
    recommendations: str = ""


NO_DATA_ADVISORY = AdvisoryResult(
    sentiment="NEUTRAL",
    confidence=0,
    signals=[],
    text="No Data Available - AI analysis requires an OpenRouter API key",
    recommendations="No Data Available - configure the advisory API key",
)


@runtime_checkable
class AdvisoryGenerator(Protocol):
    async def analyze(
        self,
        series: Sequence[QuoteRecord],
        indicators_by_symbol: Mapping[Symbol, IndicatorSet],
    ) -> AdvisoryResult: ...


class NoDataAdvisor:
    """Always answers with the no-data sentinel."""

    async def analyze(
        self,
        series: Sequence[QuoteRecord],
        indicators_by_symbol: Mapping[Symbol, IndicatorSet],
    ) -> AdvisoryResult:
        return NO_DATA_ADVISORY


def build_prompt(
    series: Sequence[QuoteRecord],
    indicators_by_symbol: Mapping[Symbol, IndicatorSet],
) -> str:
    """Render the latest quote per symbol and the indicator sets."""
    latest: dict[Symbol, QuoteRecord] = {}
    for record in series:
        current = latest.get(record.symbol)
        if current is None or record.timestamp > current.timestamp:
            latest[record.symbol] = record

    market_lines = "\n".join(
        f"- {r.symbol}: {r.close} ({r.change_percent}%), Volume: {r.volume}"
        for r in sorted(latest.values(), key=lambda r: r.symbol)
    ) or "- Not available"
    indicators = json.dumps(
        {s: ind.model_dump(mode="json") for s, ind in indicators_by_symbol.items()},
        indent=2,
    )
    return ANALYSIS_PROMPT_TEMPLATE.format(
        market_lines=market_lines, indicators=indicators
    )


def parse_advisory_response(raw: str) -> AdvisoryResult:
    """Parse and normalize the model's JSON reply.

    Handles markdown code fences. Unknown sentiments become NEUTRAL,
    missing or non-finite confidence falls back to 50 before clamping to
    [0, 100], and at most five signals are kept.

    Raises:
        AdvisoryError: If the reply is not a JSON object.
    """
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines if not line.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AdvisoryError(
            f"Failed to parse advisory response as JSON: {e}",
            context={"response_body": raw[:500], "parse_error": str(e)},
        ) from e

    if not isinstance(data, dict):
        raise AdvisoryError(
            f"Expected JSON object, got {type(data).__name__}",
            context={"response_body": raw[:500]},
        )

    sentiment = str(data.get("sentiment", "")).upper()
    if sentiment not in ("BULLISH", "BEARISH", "NEUTRAL"):
        sentiment = "NEUTRAL"

    confidence = data.get("confidence")
    if (
        isinstance(confidence, bool)
        or not isinstance(confidence, (int, float))
        or not math.isfinite(confidence)
    ):
        confidence = DEFAULT_CONFIDENCE
    confidence = int(max(0, min(100, round(confidence))))

    signals = data.get("signals")
    if not isinstance(signals, list):
        signals = []
    signals = [s for s in signals if isinstance(s, dict)][:MAX_SIGNALS]

    return AdvisoryResult(
        sentiment=sentiment,
        confidence=confidence,
        signals=signals,
        text=str(data.get("marketInsights") or "Market analysis not available"),
        recommendations=str(data.get("recommendations") or "No specific recommendations"),
    )


class OpenRouterAdvisor:
    """Asks an OpenRouter-hosted model for a market read.

    Args:
        config: API key, endpoint, model and timeout.
    """

    def __init__(self, config: AdvisoryConfig) -> None:
        self._config = config
        if not config.is_configured:
            logger.warning("OpenRouter API key not found, advisory will return no data")

    async def analyze(
        self,
        series: Sequence[QuoteRecord],
        indicators_by_symbol: Mapping[Symbol, IndicatorSet],
    ) -> AdvisoryResult:
        if not self._config.is_configured:
            return NO_DATA_ADVISORY
        try:
            raw = await self._query(build_prompt(series, indicators_by_symbol))
            return parse_advisory_response(raw)
        except AdvisoryError as e:
            logger.error("Advisory analysis failed: %s", e)
            return NO_DATA_ADVISORY

    async def _query(self, prompt: str) -> str:
        payload = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.3,
            "max_tokens": 1500,
        }
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
            "X-Title": "market-sentinel",
        }
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                resp = await client.post(self._config.base_url, json=payload, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise AdvisoryError(
                f"OpenRouter API error: HTTP {e.response.status_code}",
                context={
                    "url": self._config.base_url,
                    "status_code": e.response.status_code,
                    "response_body": e.response.text[:500],
                },
            ) from e
        except httpx.RequestError as e:
            raise AdvisoryError(
                f"OpenRouter request failed: {e}",
                context={"url": self._config.base_url},
            ) from e
        except ValueError as e:
            raise AdvisoryError(
                "OpenRouter returned invalid JSON",
                context={"url": self._config.base_url},
            ) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AdvisoryError(
                "No content in OpenRouter response",
                context={"response_body": str(data)[:500]},
            ) from e
        if not content:
            raise AdvisoryError("Empty content in OpenRouter response")
        return content
