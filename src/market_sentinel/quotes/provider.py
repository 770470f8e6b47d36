"""Quote adapter protocol: the source-agnostic interface layer.

Architecture
------------
Every external quote source is wrapped in one adapter class:

    Source API → QuoteAdapter.fetch(symbols) → list[QuoteRecord] → FailoverFetcher

- **QuoteAdapter** owns one source's request shape, response shape and
  symbol-name mapping. It either returns canonical ``QuoteRecord``s or
  raises a ``ProviderError``.

- **validate_symbols** is the allow-list gate applied before any symbol
  reaches an outbound request.
"""

from __future__ import annotations

import logging
import math
from datetime import timedelta, timezone
from typing import Protocol, Sequence, runtime_checkable

from market_sentinel.core.exceptions import InvalidSymbolError
from market_sentinel.core.models import SYMBOL_PATTERN, QuoteRecord, Symbol

logger = logging.getLogger(__name__)

# Indian exchanges report local time without an offset.
IST = timezone(timedelta(hours=5, minutes=30))


@runtime_checkable
class QuoteAdapter(Protocol):
    """Fetches quotes for a list of canonical symbols from one source.

    Implementations must fail by raising (typically a ``ProviderError``
    subclass). Adapters that need credentials raise
    ``ProviderNotConfiguredError`` before touching the network.

    Returns
    -------
    list[QuoteRecord]
        Zero or more records, at most one per requested symbol.
    """

    @property
    def name(self) -> str: ...

    async def fetch(self, symbols: Sequence[Symbol]) -> list[QuoteRecord]: ...


def check_symbol(symbol: str) -> Symbol:
    """Return the symbol if it passes the allow-list, else raise."""
    if not isinstance(symbol, str) or not SYMBOL_PATTERN.match(symbol):
        raise InvalidSymbolError(
            f"Symbol rejected by allow-list: {symbol!r}",
            context={"symbol": symbol},
        )
    return symbol


def validate_symbols(symbols: Sequence[str]) -> list[Symbol]:
    """Filter symbols through the allow-list, logging and dropping rejects.

    Order is preserved and duplicates are removed.
    """
    valid: list[Symbol] = []
    for symbol in symbols:
        try:
            checked = check_symbol(symbol)
        except InvalidSymbolError as e:
            logger.warning("%s", e)
            continue
        if checked not in valid:
            valid.append(checked)
    return valid


def is_usable(record: QuoteRecord, requested: Sequence[Symbol]) -> bool:
    """A record counts toward a provider's yield if it is for a requested
    symbol and carries a positive, finite close."""
    return (
        record.symbol in requested
        and math.isfinite(record.close)
        and record.close > 0
    )


def to_float(value: object) -> float | None:
    """Coerce a JSON scalar to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None
