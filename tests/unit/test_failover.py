"""Tests for market_sentinel.quotes.failover."""

from __future__ import annotations

import asyncio
import logging

import pytest

from market_sentinel.core.config import (
    CsvReplayConfig,
    ProvidersConfig,
    SentinelConfig,
    YahooConfig,
)
from market_sentinel.core.exceptions import (
    AuthenticationError,
    ProviderError,
    ProviderNotConfiguredError,
)
from market_sentinel.core.models import QuoteRecord
from market_sentinel.quotes.failover import FailoverFetcher, ProviderHealth


def _quote(symbol: str, close: float = 100.0) -> QuoteRecord:
    return QuoteRecord(symbol=symbol, high=close, low=close, close=close)


class FakeAdapter:
    """Adapter double that returns canned records or raises."""

    def __init__(self, name, records=None, error=None, delay=0.0, connected=True):
        self._name = name
        self._records = records or []
        self._error = error
        self._delay = delay
        self._connected = connected
        self.calls: list[list[str]] = []
        self.connect_calls = 0

    @property
    def name(self):
        return self._name

    async def connect(self):
        self.connect_calls += 1
        return self._connected

    async def fetch(self, symbols):
        self.calls.append(list(symbols))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return list(self._records)


SYMBOLS = ["NIFTY", "BANKNIFTY", "SENSEX", "RELIANCE", "TCS"]


class TestFailoverFetcher:
    async def test_first_sufficient_adapter_wins(self):
        a = FakeAdapter("a", error=ProviderError("boom"))
        b = FakeAdapter("b", records=[_quote(s) for s in SYMBOLS[:3]])
        c = FakeAdapter("c", records=[_quote(s) for s in SYMBOLS])
        fetcher = FailoverFetcher([a, b, c])

        records = await fetcher.fetch(SYMBOLS)

        assert [r.symbol for r in records] == SYMBOLS[:3]
        assert c.calls == []
        assert fetcher.last_provider == "b"
        assert fetcher.last_report.chain == ["a:error", "b:ok"]

    async def test_results_never_merged(self):
        a = FakeAdapter("a", records=[_quote("NIFTY")])
        b = FakeAdapter("b", records=[_quote("SENSEX")])
        records = await FailoverFetcher([a, b]).fetch(["NIFTY", "SENSEX"])
        assert [r.symbol for r in records] == ["NIFTY"]

    async def test_timeout_counts_as_failure(self):
        slow = FakeAdapter("slow", records=[_quote("NIFTY")], delay=1.0)
        fast = FakeAdapter("fast", records=[_quote("NIFTY", 101.0)])
        fetcher = FailoverFetcher([slow, fast], timeout_seconds=0.05)

        records = await fetcher.fetch(["NIFTY"])

        assert records[0].close == 101.0
        assert fetcher.last_report.chain == ["slow:timeout", "fast:ok"]
        assert fetcher.health()["slow"].last_error.startswith("timed out")

    async def test_min_records_threshold(self):
        thin = FakeAdapter("thin", records=[_quote("NIFTY")])
        full = FakeAdapter("full", records=[_quote("NIFTY"), _quote("SENSEX")])
        fetcher = FailoverFetcher([thin, full], min_records=2)

        records = await fetcher.fetch(["NIFTY", "SENSEX"])

        assert len(records) == 2
        assert fetcher.last_report.attempts[0].outcome == "insufficient"
        assert fetcher.last_report.attempts[0].records == 1

    async def test_unusable_records_filtered(self):
        adapter = FakeAdapter(
            "a",
            records=[_quote("NIFTY", 0.0), _quote("TCS"), _quote("SENSEX")],
        )
        records = await FailoverFetcher([adapter]).fetch(["NIFTY", "SENSEX"])
        assert [r.symbol for r in records] == ["SENSEX"]

    async def test_exhaustion_returns_empty(self, caplog):
        a = FakeAdapter("a", error=RuntimeError("down"))
        b = FakeAdapter("b", records=[])
        fetcher = FailoverFetcher([a, b])
        with caplog.at_level(logging.WARNING):
            assert await fetcher.fetch(["NIFTY"]) == []
        assert fetcher.last_provider is None
        assert fetcher.last_report.chain == ["a:error", "b:insufficient"]
        assert "All providers failed" in caplog.text

    @pytest.mark.parametrize(
        "error", [ProviderNotConfiguredError("no creds"), AuthenticationError("no jwt")]
    )
    async def test_unconfigured_adapter_skipped(self, error):
        a = FakeAdapter("a", error=error)
        b = FakeAdapter("b", records=[_quote("NIFTY")])
        fetcher = FailoverFetcher([a, b])
        assert len(await fetcher.fetch(["NIFTY"])) == 1
        assert fetcher.last_report.chain == ["a:unavailable", "b:ok"]

    async def test_invalid_symbols_never_reach_adapters(self):
        adapter = FakeAdapter("a", records=[_quote("NIFTY")])
        fetcher = FailoverFetcher([adapter])
        await fetcher.fetch(["NIFTY", "NIFTY 50", "../x", "NIFTY"])
        assert adapter.calls == [["NIFTY"]]

    async def test_no_valid_symbols_skips_adapters(self):
        adapter = FakeAdapter("a", records=[_quote("NIFTY")])
        assert await FailoverFetcher([adapter]).fetch(["bad symbol"]) == []
        assert adapter.calls == []

    async def test_health_tracking(self):
        flaky = FakeAdapter("flaky", error=ProviderError("503"))
        backup = FakeAdapter("backup", records=[_quote("NIFTY")])
        fetcher = FailoverFetcher([flaky, backup])
        await fetcher.fetch(["NIFTY"])
        await fetcher.fetch(["NIFTY"])

        health = fetcher.health()
        assert health["flaky"].consecutive_failures == 2
        assert not health["flaky"].healthy
        assert health["flaky"].last_error == "ProviderError: 503"
        assert health["backup"].healthy
        assert health["backup"].total_calls == 2

    async def test_connect_calls_each_adapter(self, caplog):
        a = FakeAdapter("a", connected=False)
        b = FakeAdapter("b")
        fetcher = FailoverFetcher([a, b])
        with caplog.at_level(logging.WARNING):
            await fetcher.connect()
        assert a.connect_calls == 1
        assert b.connect_calls == 1
        assert "Provider a did not authenticate" in caplog.text

    def test_requires_adapters(self):
        with pytest.raises(ValueError, match="at least one adapter"):
            FailoverFetcher([])

    def test_min_records_positive(self):
        with pytest.raises(ValueError, match="min_records"):
            FailoverFetcher([FakeAdapter("a")], min_records=0)


class TestProviderHealth:
    def test_success_resets_failures(self):
        health = ProviderHealth(name="yahoo")
        health.record_failure("x")
        health.record_failure("y")
        health.record_success()
        assert health.healthy
        assert health.last_error is None
        assert health.total_calls == 3
        assert health.last_failure is not None


class TestFromConfig:
    def test_default_order(self):
        fetcher = FailoverFetcher.from_config(SentinelConfig())
        assert [a.name for a in fetcher.adapters] == ["angel_one", "yahoo", "nse"]

    def test_disabled_providers_dropped(self, tmp_path):
        csv_file = tmp_path / "q.csv"
        config = SentinelConfig(
            providers=ProvidersConfig(
                order=["csv", "yahoo", "nse"],
                yahoo=YahooConfig(enabled=False),
                csv=CsvReplayConfig(enabled=True, path=str(csv_file)),
                timeout_seconds=2.0,
            )
        )
        fetcher = FailoverFetcher.from_config(config)
        assert [a.name for a in fetcher.adapters] == ["csv", "nse"]
