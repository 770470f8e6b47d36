"""Tests for market_sentinel.runtime.advisory."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from market_sentinel.core.config import AdvisoryConfig
from market_sentinel.core.exceptions import AdvisoryError
from market_sentinel.runtime.advisory import (
    NO_DATA_ADVISORY,
    AdvisoryGenerator,
    NoDataAdvisor,
    OpenRouterAdvisor,
    build_prompt,
    parse_advisory_response,
)

URL = "https://openrouter.test/api/v1/chat/completions"

REPLY = {
    "sentiment": "BULLISH",
    "confidence": 78,
    "signals": [
        {
            "type": "BUY",
            "instrument": "NIFTY",
            "entryPrice": 22050,
            "targetPrice": 22200,
            "stopLoss": 21950,
            "reasoning": "Higher lows above VWAP",
        }
    ],
    "marketInsights": "Index holding above 22000.",
    "recommendations": "Buy dips near VWAP.",
}


def _completion(content: str) -> httpx.Response:
    return httpx.Response(
        200, json={"choices": [{"message": {"role": "assistant", "content": content}}]}
    )


class TestParseAdvisoryResponse:
    def test_plain_json(self):
        result = parse_advisory_response(json.dumps(REPLY))
        assert result.sentiment == "BULLISH"
        assert result.confidence == 78
        assert result.signals[0]["instrument"] == "NIFTY"
        assert result.text == "Index holding above 22000."
        assert result.recommendations == "Buy dips near VWAP."

    def test_code_fences_stripped(self):
        raw = "```json\n" + json.dumps(REPLY) + "\n```"
        assert parse_advisory_response(raw).sentiment == "BULLISH"

    def test_normalization(self):
        raw = json.dumps(
            {
                "sentiment": "very bullish",
                "confidence": 250,
                "signals": [{"type": "BUY"}] * 7 + ["junk"],
            }
        )
        result = parse_advisory_response(raw)
        assert result.sentiment == "NEUTRAL"
        assert result.confidence == 100
        assert len(result.signals) == 5
        assert result.text == "Market analysis not available"

    @pytest.mark.parametrize("confidence,expected", [(None, 50), ("high", 50), (-3, 0), (64.6, 65)])
    def test_confidence(self, confidence, expected):
        raw = json.dumps({"sentiment": "bearish", "confidence": confidence})
        result = parse_advisory_response(raw)
        assert result.sentiment == "BEARISH"
        assert result.confidence == expected

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_confidence_uses_default(self, literal):
        raw = f'{{"sentiment": "BULLISH", "confidence": {literal}}}'
        result = parse_advisory_response(raw)
        assert result.sentiment == "BULLISH"
        assert result.confidence == 50

    def test_invalid_json(self):
        with pytest.raises(AdvisoryError) as exc_info:
            parse_advisory_response("I think the market is up")
        assert "parse_error" in exc_info.value.context

    def test_non_object(self):
        with pytest.raises(AdvisoryError, match="Expected JSON object"):
            parse_advisory_response("[1, 2]")


class TestBuildPrompt:
    def test_latest_quote_per_symbol(self, make_series, indicators_factory):
        series = make_series([100.0, 105.0])
        prompt = build_prompt(series, {"NIFTY": indicators_factory()})
        assert "- NIFTY: 105.0" in prompt
        assert "- NIFTY: 100.0" not in prompt
        assert '"rsi": 50.0' in prompt

    def test_no_market_data(self):
        assert "- Not available" in build_prompt([], {})


class TestOpenRouterAdvisor:
    @respx.mock
    async def test_without_key_returns_no_data(self):
        advisor = OpenRouterAdvisor(AdvisoryConfig(base_url=URL))
        assert await advisor.analyze([], {}) == NO_DATA_ADVISORY
        assert respx.calls.call_count == 0

    @respx.mock
    async def test_success(self, make_series):
        route = respx.post(URL).mock(return_value=_completion(json.dumps(REPLY)))
        advisor = OpenRouterAdvisor(AdvisoryConfig(api_key="sk-test", base_url=URL))

        result = await advisor.analyze(make_series([100.0]), {})

        assert result.sentiment == "BULLISH"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "mistralai/mistral-7b-instruct:free"
        assert body["messages"][0]["role"] == "system"

    @respx.mock
    async def test_http_error_returns_no_data(self):
        respx.post(URL).mock(return_value=httpx.Response(429, text="rate limited"))
        advisor = OpenRouterAdvisor(AdvisoryConfig(api_key="sk-test", base_url=URL))
        assert await advisor.analyze([], {}) == NO_DATA_ADVISORY

    @respx.mock
    async def test_unparseable_reply_returns_no_data(self):
        respx.post(URL).mock(return_value=_completion("not json at all"))
        advisor = OpenRouterAdvisor(AdvisoryConfig(api_key="sk-test", base_url=URL))
        assert await advisor.analyze([], {}) == NO_DATA_ADVISORY

    @respx.mock
    async def test_nan_confidence_in_reply(self):
        respx.post(URL).mock(
            return_value=_completion('{"sentiment": "BULLISH", "confidence": NaN}')
        )
        advisor = OpenRouterAdvisor(AdvisoryConfig(api_key="sk-test", base_url=URL))

        result = await advisor.analyze([], {})

        assert result.sentiment == "BULLISH"
        assert result.confidence == 50

    @respx.mock
    async def test_missing_choices_returns_no_data(self):
        respx.post(URL).mock(return_value=httpx.Response(200, json={"choices": []}))
        advisor = OpenRouterAdvisor(AdvisoryConfig(api_key="sk-test", base_url=URL))
        assert await advisor.analyze([], {}) == NO_DATA_ADVISORY


class TestNoDataAdvisor:
    async def test_always_no_data(self):
        result = await NoDataAdvisor().analyze([], {})
        assert result.confidence == 0
        assert result.text.startswith("No Data Available")

    def test_generators_satisfy_protocol(self):
        assert isinstance(NoDataAdvisor(), AdvisoryGenerator)
        assert isinstance(OpenRouterAdvisor(AdvisoryConfig()), AdvisoryGenerator)
