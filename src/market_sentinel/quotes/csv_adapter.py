"""CSV quote adapter: replays recorded quotes from CSV files.

Used for offline runs, demos and backfilling a repository. Any recording
with a timestamp and close column can be read; other columns are
auto-detected by common names.
"""

from __future__ import annotations

import csv
import logging
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError

from market_sentinel.core.exceptions import ProviderError
from market_sentinel.core.models import SYMBOL_PATTERN, QuoteRecord, Symbol
from market_sentinel.quotes.provider import to_float

logger = logging.getLogger(__name__)

# Common column name mappings for auto-detection
_SYMBOL_ALIASES = {"symbol", "Symbol", "SYMBOL", "ticker", "Ticker"}
_TIMESTAMP_ALIASES = {"timestamp", "Timestamp", "datetime", "Datetime", "time", "date", "Date"}
_OPEN_ALIASES = {"open", "Open", "OPEN"}
_HIGH_ALIASES = {"high", "High", "HIGH"}
_LOW_ALIASES = {"low", "Low", "LOW"}
_CLOSE_ALIASES = {"close", "Close", "CLOSE", "ltp", "last", "price"}
_VOLUME_ALIASES = {"volume", "Volume", "VOLUME", "vol", "Vol"}
_CHANGE_ALIASES = {"change", "Change", "netChange"}
_CHANGE_PCT_ALIASES = {"change_percent", "changePercent", "percentChange", "pChange"}


def _find_column(headers: list[str], aliases: set[str]) -> str | None:
    """Find the first header that matches any alias."""
    for h in headers:
        if h in aliases:
            return h
    return None


def _parse_timestamp(value: str) -> datetime | None:
    value = value.strip()
    if not value:
        return None
    epoch = to_float(value)
    if epoch is not None:
        return datetime.fromtimestamp(epoch, tz=timezone.utc)
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class CsvQuoteParser:
    """Transforms CSV rows into QuoteRecords.

    Parameters
    ----------
    default_symbol : str | None
        Symbol for files without a symbol column.
    source : str
        Value stored in ``QuoteRecord.source``. Default: "csv".
    """

    def __init__(self, default_symbol: Symbol | None = None, source: str = "csv") -> None:
        self._default_symbol = default_symbol
        self._source = source

    def parse(self, rows: list[dict[str, str]]) -> list[QuoteRecord]:
        """Parse ``csv.DictReader`` rows into records sorted by timestamp.

        Rows with an unparseable timestamp, a missing close or a symbol
        outside the allow-list are skipped with a warning.
        """
        if not rows:
            return []

        headers = list(rows[0].keys())
        cols = {
            "symbol": _find_column(headers, _SYMBOL_ALIASES),
            "timestamp": _find_column(headers, _TIMESTAMP_ALIASES),
            "open": _find_column(headers, _OPEN_ALIASES),
            "high": _find_column(headers, _HIGH_ALIASES),
            "low": _find_column(headers, _LOW_ALIASES),
            "close": _find_column(headers, _CLOSE_ALIASES),
            "volume": _find_column(headers, _VOLUME_ALIASES),
            "change": _find_column(headers, _CHANGE_ALIASES),
            "change_percent": _find_column(headers, _CHANGE_PCT_ALIASES),
        }
        if cols["timestamp"] is None:
            raise ValueError(f"Cannot find timestamp column in headers: {headers}")
        if cols["close"] is None:
            raise ValueError(f"Cannot find close column in headers: {headers}")
        if cols["symbol"] is None and self._default_symbol is None:
            raise ValueError(
                f"Cannot find symbol column in headers and no default symbol: {headers}"
            )

        def cell(row: dict[str, str], key: str) -> str:
            col = cols[key]
            return (row.get(col) or "") if col else ""

        records: list[QuoteRecord] = []
        for row in rows:
            symbol = (cell(row, "symbol").strip() or self._default_symbol or "").upper()
            if not SYMBOL_PATTERN.match(symbol):
                logger.warning("Skipping row with invalid symbol: %r", symbol)
                continue

            timestamp = _parse_timestamp(cell(row, "timestamp"))
            if timestamp is None:
                logger.warning("Skipping row with unparseable timestamp: %s", cell(row, "timestamp"))
                continue

            close = to_float(cell(row, "close"))
            if close is None:
                logger.warning("Skipping %s row at %s with no close", symbol, timestamp)
                continue

            try:
                records.append(
                    QuoteRecord(
                        symbol=symbol,
                        open=to_float(cell(row, "open")),
                        high=to_float(cell(row, "high")) or close,
                        low=to_float(cell(row, "low")) or close,
                        close=close,
                        change=to_float(cell(row, "change")) or 0.0,
                        change_percent=to_float(cell(row, "change_percent")) or 0.0,
                        volume=int(to_float(cell(row, "volume")) or 0),
                        timestamp=timestamp,
                        source=self._source,
                    )
                )
            except ValidationError as e:
                logger.warning("Skipping invalid %s row: %s", symbol, e)

        return sorted(records, key=lambda r: r.timestamp)


def load_csv_quotes(filepath: str, symbol: Symbol | None = None) -> list[QuoteRecord]:
    """Convenience function: load quote records from a CSV file.

    Parameters
    ----------
    filepath : str
        Path to the CSV file.
    symbol : str | None
        Symbol to use when the file has no symbol column.

    Returns
    -------
    list[QuoteRecord]
        Parsed records sorted by timestamp ascending.
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {filepath}")

    with open(path, newline="") as f:
        rows = list(csv.DictReader(f))

    return CsvQuoteParser(default_symbol=symbol).parse(rows)


class CsvReplayAdapter:
    """Serves recorded quotes one row per symbol per fetch, cycling at the end.

    The file is read lazily on the first fetch. Replayed records are
    re-stamped with the current time so downstream consumers see a live
    series; pass ``restamp=False`` to keep the recorded timestamps.
    """

    def __init__(self, path: str, restamp: bool = True) -> None:
        self._path = path
        self._restamp = restamp
        self._series: dict[Symbol, list[QuoteRecord]] | None = None
        self._cursor: dict[Symbol, int] = defaultdict(int)

    @property
    def name(self) -> str:
        return "csv"

    def _load(self) -> dict[Symbol, list[QuoteRecord]]:
        if self._series is None:
            try:
                records = load_csv_quotes(self._path)
            except (OSError, ValueError) as e:
                raise ProviderError(
                    f"Cannot load CSV replay file: {e}",
                    context={"provider": self.name, "path": self._path},
                ) from e
            series: dict[Symbol, list[QuoteRecord]] = defaultdict(list)
            for record in records:
                series[record.symbol].append(record)
            self._series = dict(series)
            logger.info(
                "Loaded %d recorded quotes for %d symbols from %s",
                len(records),
                len(self._series),
                self._path,
            )
        return self._series

    async def fetch(self, symbols: Sequence[Symbol]) -> list[QuoteRecord]:
        series = self._load()
        now = datetime.now(timezone.utc)
        records: list[QuoteRecord] = []
        for symbol in symbols:
            rows = series.get(symbol)
            if not rows:
                continue
            record = rows[self._cursor[symbol] % len(rows)]
            self._cursor[symbol] += 1
            if self._restamp:
                record = record.model_copy(update={"timestamp": now})
            records.append(record)
        return records
