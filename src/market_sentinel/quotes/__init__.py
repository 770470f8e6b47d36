"""market_sentinel.quotes: Source-agnostic quote acquisition and storage.

Architecture
------------
    QuoteAdapter (per source) → FailoverFetcher → SeriesEnricher → QuoteRepository

Adding a new source means writing one adapter with a ``name`` and an async
``fetch(symbols)`` and adding it to the failover order.
"""

from market_sentinel.quotes.angel_one import AngelOneAdapter
from market_sentinel.quotes.csv_adapter import CsvQuoteParser, CsvReplayAdapter, load_csv_quotes
from market_sentinel.quotes.enricher import SeriesEnricher
from market_sentinel.quotes.failover import (
    FailoverFetcher,
    FetchAttempt,
    FetchReport,
    ProviderHealth,
)
from market_sentinel.quotes.nse import NseIndicesAdapter
from market_sentinel.quotes.provider import (
    QuoteAdapter,
    check_symbol,
    is_usable,
    validate_symbols,
)
from market_sentinel.quotes.repository import (
    InMemoryQuoteRepository,
    JsonFileQuoteRepository,
    QuoteRepository,
    build_repository,
    previous_close,
)
from market_sentinel.quotes.yahoo import YahooChartAdapter, YahooChartParser, to_yahoo_ticker

__all__ = [
    # Protocol
    "QuoteAdapter",
    "check_symbol",
    "validate_symbols",
    "is_usable",
    # Adapters
    "YahooChartAdapter",
    "YahooChartParser",
    "to_yahoo_ticker",
    "AngelOneAdapter",
    "NseIndicesAdapter",
    "CsvReplayAdapter",
    "CsvQuoteParser",
    "load_csv_quotes",
    # Failover
    "FailoverFetcher",
    "FetchAttempt",
    "FetchReport",
    "ProviderHealth",
    # Enrichment
    "SeriesEnricher",
    # Storage
    "QuoteRepository",
    "InMemoryQuoteRepository",
    "JsonFileQuoteRepository",
    "build_repository",
    "previous_close",
]
