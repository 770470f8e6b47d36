"""market_sentinel.analysis: Sufficiency gating and technical indicators."""

from market_sentinel.analysis.engine import IndicatorEngine, group_by_symbol
from market_sentinel.analysis.indicators import (
    bollinger,
    compute_indicator_set,
    ema,
    macd,
    rsi,
    supertrend,
    vwap,
)
from market_sentinel.analysis.sufficiency import SufficiencyGate, SufficiencyReport
from market_sentinel.analysis.timeframes import bucket_start, resample

__all__ = [
    "rsi",
    "ema",
    "macd",
    "vwap",
    "bollinger",
    "supertrend",
    "compute_indicator_set",
    "SufficiencyGate",
    "SufficiencyReport",
    "IndicatorEngine",
    "group_by_symbol",
    "bucket_start",
    "resample",
]
