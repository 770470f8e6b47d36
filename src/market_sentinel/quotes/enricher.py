"""Fill in missing opening prices before records are stored."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Sequence

from market_sentinel.core.models import QuoteRecord, Symbol

logger = logging.getLogger(__name__)

PreviousCloseLookup = Callable[[Symbol], Awaitable[float | None]]


class SeriesEnricher:
    """Replaces absent, zero or non-finite ``open`` values.

    The substitute is the symbol's previous stored close when the lookup
    finds one, otherwise the record's own close. Records that already have
    a usable open are returned as the same object.
    """

    async def enrich(
        self,
        batch: Sequence[QuoteRecord],
        lookup_previous_close: PreviousCloseLookup,
    ) -> list[QuoteRecord]:
        previous: dict[Symbol, float | None] = {}
        enriched: list[QuoteRecord] = []

        for record in batch:
            if record.has_usable_open:
                enriched.append(record)
                continue

            if record.symbol not in previous:
                previous[record.symbol] = await lookup_previous_close(record.symbol)
            prior = previous[record.symbol]

            open_ = prior if prior is not None and prior > 0 else record.close
            logger.debug(
                "Filled open for %s with %s (%s)",
                record.symbol,
                open_,
                "previous close" if open_ is prior else "own close",
            )
            enriched.append(record.model_copy(update={"open": round(open_, 2)}))

        return enriched
