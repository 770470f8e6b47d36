"""Multi-timeframe consensus: a majority vote over per-timeframe decisions."""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from market_sentinel.core.models import (
    DEFAULT_TIMEFRAMES,
    ConsensusDecision,
    SignalCounts,
    SignalDecision,
    SignalType,
    Symbol,
    Timeframe,
)

logger = logging.getLogger("market_sentinel.signals")


class ConsensusAggregator:
    """Combines per-timeframe SignalDecisions into one ConsensusDecision.

    Only timeframes in the configured set are counted, and missing
    timeframes are left out of the denominator rather than counted as
    HOLD. BUY or SELL wins only with more votes than each other category;
    otherwise the result is HOLD. Strength is the winning share of votes
    (HOLD's share when HOLD is the result), rounded to a whole percent.

    Args:
        timeframes: Timeframes that take part in the vote.
    """

    def __init__(self, timeframes: Sequence[Timeframe] = DEFAULT_TIMEFRAMES) -> None:
        self._timeframes = tuple(timeframes)

    @property
    def timeframes(self) -> tuple[Timeframe, ...]:
        return self._timeframes

    def consensus(
        self,
        symbol: Symbol,
        signals: Mapping[Timeframe, SignalDecision],
    ) -> ConsensusDecision:
        counted = {tf: d for tf, d in signals.items() if tf in self._timeframes}
        counts = SignalCounts(
            buy=sum(1 for d in counted.values() if d.signal == SignalType.BUY),
            sell=sum(1 for d in counted.values() if d.signal == SignalType.SELL),
            hold=sum(1 for d in counted.values() if d.signal == SignalType.HOLD),
        )
        total = counts.total

        if total == 0:
            return ConsensusDecision(
                symbol=symbol,
                signal=SignalType.HOLD,
                strength=0,
                counts=counts,
                timeframes=counted,
            )

        if counts.buy > counts.sell and counts.buy > counts.hold:
            signal, winning = SignalType.BUY, counts.buy
        elif counts.sell > counts.buy and counts.sell > counts.hold:
            signal, winning = SignalType.SELL, counts.sell
        else:
            signal, winning = SignalType.HOLD, counts.hold

        decision = ConsensusDecision(
            symbol=symbol,
            signal=signal,
            strength=round(winning / total * 100),
            counts=counts,
            timeframes=counted,
        )
        logger.debug(
            "Consensus %s: %s %d%% (buy=%d sell=%d hold=%d)",
            symbol,
            decision.signal,
            decision.strength,
            counts.buy,
            counts.sell,
            counts.hold,
        )
        return decision
