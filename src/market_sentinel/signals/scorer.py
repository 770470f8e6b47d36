"""Rule-table signal scorer: one IndicatorSet in, one SignalDecision out."""

from __future__ import annotations

import logging
import random

from market_sentinel.core.models import (
    IndicatorSet,
    SignalDecision,
    SignalType,
    TrendDirection,
)

logger = logging.getLogger("market_sentinel.signals")

BUY_THRESHOLD = 1
SELL_THRESHOLD = -1
MIN_STRENGTH = 10
MAX_STRENGTH = 100
MOMENTUM_CUTOFF = 0.5


def strength_for(score: int) -> int:
    """Map an absolute score to a strength in [10, 100]."""
    return min(MAX_STRENGTH, max(MIN_STRENGTH, abs(score) * 15 + 20))


class SignalScorer:
    """Additive point scoring over RSI, MACD, EMA alignment and Supertrend.

    Score > 1 is BUY, score < -1 is SELL, anything else HOLD.

    The optional momentum term draws ``u`` uniformly from [-1, 1) and adds
    +/-1 when ``|u| > 0.5``. It only runs when a ``random.Random`` is
    injected, so a default scorer is fully deterministic and a seeded one
    is reproducible.

    Usage:
        scorer = SignalScorer()
        decision = scorer.score(indicators)

    Args:
        momentum_rng: Source for the momentum term. None disables it.
    """

    def __init__(self, momentum_rng: random.Random | None = None) -> None:
        self._rng = momentum_rng

    def score(self, indicators: IndicatorSet) -> SignalDecision:
        points = 0
        reasons: list[str] = []

        rsi = indicators.rsi
        if rsi < 35:
            points += 3
            reasons.append("RSI oversold")
        elif rsi < 45:
            points += 1
            reasons.append("RSI below midline")
        elif rsi > 65:
            points -= 3
            reasons.append("RSI overbought")
        elif rsi > 55:
            points -= 1
            reasons.append("RSI above midline")

        m = indicators.macd
        if m.macd > m.signal and m.histogram > 0:
            points += 2
            reasons.append("MACD bullish crossover")
        elif m.macd < m.signal and m.histogram < 0:
            points -= 2
            reasons.append("MACD bearish crossover")
        elif m.macd > m.signal:
            points += 1
            reasons.append("MACD above signal")
        else:
            points -= 1
            reasons.append("MACD below signal")

        if indicators.ema20 > indicators.ema50:
            points += 2
            reasons.append("EMA bullish alignment")
        else:
            points -= 2
            reasons.append("EMA bearish alignment")

        if indicators.supertrend.direction == TrendDirection.LONG:
            points += 1
            reasons.append("Supertrend bullish")
        else:
            points -= 1
            reasons.append("Supertrend bearish")

        if self._rng is not None:
            u = self._rng.uniform(-1.0, 1.0)
            if abs(u) > MOMENTUM_CUTOFF:
                if u > 0:
                    points += 1
                    reasons.append("market momentum positive")
                else:
                    points -= 1
                    reasons.append("market momentum negative")

        if points > BUY_THRESHOLD:
            signal = SignalType.BUY
        elif points < SELL_THRESHOLD:
            signal = SignalType.SELL
        else:
            signal = SignalType.HOLD

        decision = SignalDecision(
            signal=signal,
            strength=strength_for(points),
            reasoning=reasons,
            score=points,
        )
        logger.debug(
            "%s [%s]: %s (score %d, strength %d) %s",
            indicators.symbol,
            indicators.timeframe,
            decision.signal,
            points,
            decision.strength,
            decision.reasoning_text,
        )
        return decision
