"""NSE India public index adapter (``/api/allIndices``)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Sequence

import httpx

from market_sentinel.core.exceptions import ProviderError, ProviderResponseError
from market_sentinel.core.models import QuoteRecord, Symbol
from market_sentinel.quotes.provider import IST, to_float

logger = logging.getLogger(__name__)

# NSE does not publish BSE indices, so SENSEX is intentionally absent.
_INDEX_NAMES: dict[Symbol, str] = {
    "NIFTY": "NIFTY 50",
    "BANKNIFTY": "NIFTY BANK",
}

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}

_TIMESTAMP_FORMATS = ("%d-%b-%Y %H:%M:%S", "%d-%b-%Y %H:%M")


class NseIndicesAdapter:
    """Reads index snapshots from a single ``allIndices`` call."""

    def __init__(
        self,
        base_url: str = "https://www.nseindia.com/api",
        timeout: float = 10.0,
        index_names: dict[Symbol, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._index_names = index_names or dict(_INDEX_NAMES)

    @property
    def name(self) -> str:
        return "nse"

    async def fetch(self, symbols: Sequence[Symbol]) -> list[QuoteRecord]:
        wanted = {
            self._index_names[s]: s for s in symbols if s in self._index_names
        }
        if not wanted:
            return []

        url = f"{self._base_url}/allIndices"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, headers=_HEADERS
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"NSE request failed: HTTP {e.response.status_code}",
                context={
                    "provider": self.name,
                    "url": url,
                    "status_code": e.response.status_code,
                },
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"NSE request failed: {e}",
                context={"provider": self.name, "url": url},
            ) from e
        except ValueError as e:
            raise ProviderResponseError(
                "NSE returned invalid JSON",
                context={"provider": self.name, "url": url},
            ) from e

        rows = body.get("data")
        if not isinstance(rows, list):
            raise ProviderResponseError(
                "NSE response has no 'data' list",
                context={"provider": self.name, "url": url},
            )

        timestamp = _parse_timestamp(body.get("timestamp"))
        records: list[QuoteRecord] = []
        for row in rows:
            symbol = wanted.get(row.get("index"))
            if symbol is None:
                continue
            record = self._parse_row(row, symbol, timestamp)
            if record is not None:
                records.append(record)
        return records

    def _parse_row(
        self, row: dict[str, Any], symbol: Symbol, timestamp: datetime
    ) -> QuoteRecord | None:
        last = to_float(row.get("last"))
        if last is None or last <= 0:
            logger.warning("NSE row for %s has no usable 'last'", symbol)
            return None
        return QuoteRecord(
            symbol=symbol,
            open=to_float(row.get("open")),
            high=to_float(row.get("high")) or last,
            low=to_float(row.get("low")) or last,
            close=last,
            change=to_float(row.get("variation")) or 0.0,
            change_percent=to_float(row.get("percentChange")) or 0.0,
            volume=0,
            timestamp=timestamp,
            source=self.name,
        )


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        for fmt in _TIMESTAMP_FORMATS:
            try:
                return datetime.strptime(value, fmt).replace(tzinfo=IST)
            except ValueError:
                continue
    return datetime.now(timezone.utc)
