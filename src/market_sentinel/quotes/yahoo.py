"""Yahoo Finance quote adapter: direct HTTP implementation.

Uses the unauthenticated ``/v8/finance/chart/`` endpoint via httpx, one
request per symbol with ``interval=1m&range=1d``. The latest quote is read
from the response's ``meta`` block.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Sequence
from urllib.parse import quote

import httpx
from aiolimiter import AsyncLimiter

from market_sentinel.core.models import QuoteRecord, Symbol
from market_sentinel.quotes.provider import to_float

logger = logging.getLogger(__name__)

_BASE_URL = "https://query1.finance.yahoo.com"
_CHART_PATH = "/v8/finance/chart"
_USER_AGENT = "Mozilla/5.0 (compatible; market-sentinel/0.1)"

# Canonical symbol -> Yahoo ticker. Anything else is assumed to be an NSE equity.
_SYMBOL_MAP: dict[Symbol, str] = {
    "NIFTY": "^NSEI",
    "BANKNIFTY": "^NSEBANK",
    "SENSEX": "^BSESN",
}


def to_yahoo_ticker(symbol: Symbol) -> str:
    return _SYMBOL_MAP.get(symbol, f"{symbol}.NS")


class YahooChartParser:
    """Transforms one ``chart.result[0]`` object into a QuoteRecord."""

    def parse(self, raw_data: dict[str, Any], symbol: Symbol) -> QuoteRecord | None:
        """Parse the latest quote from a Yahoo chart result.

        Parameters
        ----------
        raw_data : dict
            The ``chart.result[0]`` object from a Yahoo Finance chart response.
        symbol : str
            The canonical symbol the data belongs to.

        Returns
        -------
        QuoteRecord | None
            None when the payload has no usable market price.
        """
        meta = raw_data.get("meta") or {}
        price = to_float(meta.get("regularMarketPrice"))
        if price is None or price <= 0:
            return None

        quotes = (raw_data.get("indicators") or {}).get("quote") or [{}]
        series = quotes[0] if quotes else {}

        previous_close = to_float(meta.get("previousClose")) or to_float(
            meta.get("chartPreviousClose")
        )
        high = to_float(meta.get("regularMarketDayHigh")) or _extreme(
            series.get("high"), max
        ) or price
        low = to_float(meta.get("regularMarketDayLow")) or _extreme(
            series.get("low"), min
        ) or price
        open_ = to_float(meta.get("regularMarketOpen")) or _first(series.get("open"))

        if previous_close:
            change = price - previous_close
            change_percent = change / previous_close * 100
        else:
            change = 0.0
            change_percent = 0.0

        volume = to_float(meta.get("regularMarketVolume")) or 0.0

        return QuoteRecord(
            symbol=symbol,
            open=open_,
            high=high,
            low=low,
            close=price,
            change=change,
            change_percent=change_percent,
            volume=int(volume),
            timestamp=_quote_time(meta, raw_data.get("timestamp")),
            source="yahoo",
        )


def _first(values: list[Any] | None) -> float | None:
    for v in values or []:
        parsed = to_float(v)
        if parsed is not None:
            return parsed
    return None


def _extreme(values: list[Any] | None, fn) -> float | None:
    parsed = [p for p in (to_float(v) for v in values or []) if p is not None]
    return fn(parsed) if parsed else None


def _quote_time(meta: dict[str, Any], timestamps: list[int] | None) -> datetime:
    epoch = meta.get("regularMarketTime")
    if epoch is None and timestamps:
        epoch = timestamps[-1]
    if isinstance(epoch, (int, float)):
        return datetime.fromtimestamp(epoch, tz=timezone.utc)
    return datetime.now(timezone.utc)


class YahooChartAdapter:
    """Fetches the latest quote per symbol from Yahoo Finance's chart API.

    Per-symbol HTTP failures are logged and the symbol is skipped, so the
    result may be partial; the failover fetcher decides whether that is
    enough.

    Parameters
    ----------
    base_url : str
        Override base URL (useful for testing).
    timeout : float
        HTTP request timeout in seconds. Default: 10.0.
    requests_per_second : int
        Token-bucket rate for outbound requests. Default: 4.
    parser : YahooChartParser | None
        Custom parser instance. Uses default if None.
    """

    def __init__(
        self,
        base_url: str = _BASE_URL,
        timeout: float = 10.0,
        requests_per_second: int = 4,
        parser: YahooChartParser | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._limiter = AsyncLimiter(max_rate=requests_per_second, time_period=1.0)
        self._parser = parser or YahooChartParser()

    @property
    def name(self) -> str:
        return "yahoo"

    async def _fetch_chart(
        self, client: httpx.AsyncClient, symbol: Symbol
    ) -> dict[str, Any] | None:
        """Fetch raw chart data for a single symbol.

        Returns the ``chart.result[0]`` object, or None on error.
        """
        ticker = to_yahoo_ticker(symbol)
        url = f"{self._base_url}{_CHART_PATH}/{quote(ticker, safe='')}"

        await self._limiter.acquire()
        try:
            resp = await client.get(
                url,
                params={"interval": "1m", "range": "1d"},
                headers={"User-Agent": _USER_AGENT},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Yahoo Finance HTTP error for %s: %s %s",
                symbol,
                e.response.status_code,
                e.response.text[:200],
            )
            return None
        except httpx.RequestError as e:
            logger.error("Yahoo Finance request error for %s: %s", symbol, e)
            return None
        except ValueError as e:
            logger.error("Yahoo Finance returned invalid JSON for %s: %s", symbol, e)
            return None

        chart = data.get("chart") or {}
        if chart.get("error"):
            err = chart["error"]
            logger.error(
                "Yahoo Finance API error for %s: %s (%s)",
                symbol,
                err.get("code"),
                err.get("description"),
            )
            return None

        results = chart.get("result")
        if not results:
            logger.warning("Yahoo Finance returned no results for %s", symbol)
            return None

        return results[0]

    async def fetch(self, symbols: Sequence[Symbol]) -> list[QuoteRecord]:
        """Fetch one quote per symbol. Symbols that fail are omitted."""
        records: list[QuoteRecord] = []

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            for symbol in symbols:
                raw = await self._fetch_chart(client, symbol)
                if raw is None:
                    continue
                record = self._parser.parse(raw, symbol)
                if record is None:
                    logger.warning("No valid data received from Yahoo for %s", symbol)
                    continue
                records.append(record)

        return records
