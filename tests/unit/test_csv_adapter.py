"""Tests for market_sentinel.quotes.csv_adapter."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from market_sentinel.core.exceptions import ProviderError
from market_sentinel.quotes.csv_adapter import (
    CsvQuoteParser,
    CsvReplayAdapter,
    load_csv_quotes,
)

RECORDED = (
    "symbol,timestamp,open,high,low,ltp,volume,netChange,percentChange\n"
    "NIFTY,2024-06-21T09:16:00+05:30,23500,23510,23490,23505.5,1000,5.5,0.02\n"
    "nifty,2024-06-21T09:15:00+05:30,23480,23502,23470,23500,900,0,0\n"
    "SENSEX,2024-06-21T09:15:00+05:30,,77300,77100,77210.25,0,10,0.01\n"
    "BAD SYMBOL,2024-06-21T09:15:00+05:30,1,1,1,1,1,0,0\n"
    "NIFTY,not-a-time,1,1,1,1,1,0,0\n"
    "NIFTY,2024-06-21T09:17:00+05:30,1,1,1,,1,0,0\n"
)


@pytest.fixture
def recorded_csv(tmp_path):
    path = tmp_path / "recorded.csv"
    path.write_text(RECORDED)
    return path


class TestCsvQuoteParser:
    def test_skips_bad_rows_and_sorts(self, recorded_csv):
        records = load_csv_quotes(str(recorded_csv))
        assert [(r.symbol, r.close) for r in records] == [
            ("NIFTY", 23500.0),
            ("SENSEX", 77210.25),
            ("NIFTY", 23505.5),
        ]
        latest = records[-1]
        assert latest.change == 5.5
        assert latest.volume == 1000
        assert latest.source == "csv"

    def test_blank_open_is_absent(self, recorded_csv):
        sensex = [r for r in load_csv_quotes(str(recorded_csv)) if r.symbol == "SENSEX"]
        assert sensex[0].open is None

    def test_epoch_timestamps_and_default_symbol(self):
        rows = [
            {"Date": "1718942400", "Close": "22,055.70"},
            {"Date": "1718942340", "Close": "22050"},
        ]
        records = CsvQuoteParser(default_symbol="nifty").parse(rows)
        assert [r.symbol for r in records] == ["NIFTY", "NIFTY"]
        assert records[0].timestamp == datetime.fromtimestamp(1718942340, tz=timezone.utc)
        assert records[1].close == 22055.7
        assert records[1].high == 22055.7

    def test_missing_close_column(self):
        with pytest.raises(ValueError, match="close column"):
            CsvQuoteParser(default_symbol="NIFTY").parse([{"timestamp": "1", "x": "2"}])

    def test_missing_timestamp_column(self):
        with pytest.raises(ValueError, match="timestamp column"):
            CsvQuoteParser(default_symbol="NIFTY").parse([{"close": "1"}])

    def test_missing_symbol_without_default(self):
        with pytest.raises(ValueError, match="symbol column"):
            CsvQuoteParser().parse([{"timestamp": "1", "close": "2"}])

    def test_empty_rows(self):
        assert CsvQuoteParser().parse([]) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_csv_quotes(str(tmp_path / "missing.csv"))


class TestCsvReplayAdapter:
    async def test_one_row_per_symbol_per_fetch(self, recorded_csv):
        adapter = CsvReplayAdapter(str(recorded_csv), restamp=False)
        first = await adapter.fetch(["NIFTY", "SENSEX", "BANKNIFTY"])
        second = await adapter.fetch(["NIFTY"])
        third = await adapter.fetch(["NIFTY"])

        assert [(r.symbol, r.close) for r in first] == [
            ("NIFTY", 23500.0),
            ("SENSEX", 77210.25),
        ]
        assert second[0].close == 23505.5
        assert third[0].close == 23500.0

    async def test_restamps_with_current_time(self, recorded_csv):
        adapter = CsvReplayAdapter(str(recorded_csv))
        before = datetime.now(timezone.utc)
        records = await adapter.fetch(["NIFTY"])
        assert records[0].timestamp >= before

    async def test_missing_file_is_provider_error(self, tmp_path):
        adapter = CsvReplayAdapter(str(tmp_path / "missing.csv"))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.fetch(["NIFTY"])
        assert exc_info.value.context["provider"] == "csv"

    def test_name(self, tmp_path):
        assert CsvReplayAdapter(str(tmp_path / "x.csv")).name == "csv"
