"""Time-bucketed resampling of quote series into coarser bars."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from market_sentinel.core.models import QuoteRecord, Timeframe


def bucket_start(timestamp: datetime, timeframe: Timeframe) -> datetime:
    """Floor a timestamp to the start of its bucket (UTC epoch aligned)."""
    epoch = int(timestamp.timestamp())
    width = timeframe.seconds
    return datetime.fromtimestamp(epoch - epoch % width, tz=timezone.utc)


def resample(records: Sequence[QuoteRecord], timeframe: Timeframe) -> list[QuoteRecord]:
    """Aggregate one symbol's records into OHLCV bars of ``timeframe`` width.

    Records are sorted by timestamp first. Each bar takes the first record's
    open (or its close when open is absent), the max high, the min low, the
    last close and the summed volume, and is stamped with the bucket start.
    ``change`` is measured against the previous bar's close.

    Args:
        records: Records for a single symbol, in any order.
        timeframe: Target bar width.

    Returns:
        Bars in ascending time order. Empty input gives an empty list.
    """
    if not records:
        return []

    symbols = {r.symbol for r in records}
    if len(symbols) > 1:
        raise ValueError(f"resample expects one symbol, got {sorted(symbols)}")

    ordered = sorted(records, key=lambda r: r.timestamp)
    buckets: dict[datetime, list[QuoteRecord]] = {}
    for record in ordered:
        buckets.setdefault(bucket_start(record.timestamp, timeframe), []).append(record)

    bars: list[QuoteRecord] = []
    prev_close: float | None = None
    for start, group in buckets.items():
        first, last = group[0], group[-1]
        close = last.close
        if prev_close:
            change = close - prev_close
            change_percent = change / prev_close * 100
        else:
            change = last.change
            change_percent = last.change_percent

        bars.append(
            QuoteRecord(
                symbol=first.symbol,
                open=first.open if first.has_usable_open else first.close,
                high=max(r.high for r in group),
                low=min(r.low for r in group),
                close=close,
                change=change,
                change_percent=change_percent,
                volume=sum(r.volume for r in group),
                timestamp=start,
                source=last.source,
            )
        )
        prev_close = close

    return bars
