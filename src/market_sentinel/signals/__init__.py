"""Signals module: turns indicator sets into trading decisions."""

from market_sentinel.signals.consensus import ConsensusAggregator
from market_sentinel.signals.scorer import SignalScorer, strength_for

__all__ = [
    "ConsensusAggregator",
    "SignalScorer",
    "strength_for",
]
