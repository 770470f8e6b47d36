"""Indicator engine: groups stored records by symbol and computes indicators.

Only series that pass the SufficiencyGate reach the indicator functions.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Sequence

from market_sentinel.analysis.indicators import compute_indicator_set
from market_sentinel.analysis.sufficiency import SufficiencyGate, SufficiencyReport
from market_sentinel.analysis.timeframes import resample
from market_sentinel.core.config import AnalysisConfig
from market_sentinel.core.models import IndicatorSet, QuoteRecord, Symbol, Timeframe

logger = logging.getLogger(__name__)


def group_by_symbol(records: Sequence[QuoteRecord]) -> dict[Symbol, list[QuoteRecord]]:
    """Group records per symbol, each group sorted oldest first."""
    grouped: dict[Symbol, list[QuoteRecord]] = defaultdict(list)
    for record in records:
        grouped[record.symbol].append(record)
    return {s: sorted(rs, key=lambda r: r.timestamp) for s, rs in grouped.items()}


class IndicatorEngine:
    """Computes IndicatorSets for every symbol with sufficient history.

    Args:
        config: Gate thresholds and indicator options.
        gate: Custom gate. Built from ``config`` if None.
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        gate: SufficiencyGate | None = None,
    ) -> None:
        self._config = config or AnalysisConfig()
        self._gate = gate or SufficiencyGate(self._config)
        self._reports: dict[tuple[Symbol, Timeframe], SufficiencyReport] = {}

    @property
    def last_reports(self) -> dict[tuple[Symbol, Timeframe], SufficiencyReport]:
        """Gate reports from the most recent analyze call, by (symbol, timeframe)."""
        return dict(self._reports)

    def _gated(
        self, symbol: Symbol, timeframe: Timeframe, series: list[QuoteRecord]
    ) -> IndicatorSet | None:
        report = self._gate.check(series)
        self._reports[(symbol, timeframe)] = report
        if not report.sufficient:
            logger.info(
                "Insufficient data for %s [%s]: %s",
                symbol,
                timeframe,
                "; ".join(report.reasons),
            )
            return None
        logger.debug(
            "%s [%s]: %d points, %d unique timestamps, range %.2f, std %.4f",
            symbol,
            timeframe,
            report.points,
            report.unique_timestamps,
            report.price_range,
            report.std_dev,
        )
        return compute_indicator_set(series, symbol, timeframe, self._config)

    def analyze(self, records: Sequence[QuoteRecord]) -> dict[Symbol, IndicatorSet]:
        """Indicators on the raw (finest) series for each passing symbol."""
        self._reports = {}
        if not records:
            logger.warning("No market data available for technical analysis")
            return {}

        results: dict[Symbol, IndicatorSet] = {}
        for symbol, series in group_by_symbol(records).items():
            indicators = self._gated(symbol, Timeframe.ONE_MINUTE, series)
            if indicators is not None:
                results[symbol] = indicators
        return results

    def analyze_timeframes(
        self,
        records: Sequence[QuoteRecord],
        timeframes: Sequence[Timeframe] | None = None,
    ) -> dict[Symbol, dict[Timeframe, IndicatorSet]]:
        """Indicators per symbol per timeframe on time-bucketed series.

        Timeframes whose bucketed series fails the gate are absent from the
        inner mapping.
        """
        self._reports = {}
        timeframes = list(timeframes or self._config.timeframes)
        results: dict[Symbol, dict[Timeframe, IndicatorSet]] = {}

        for symbol, series in group_by_symbol(records).items():
            per_tf: dict[Timeframe, IndicatorSet] = {}
            for timeframe in timeframes:
                bars = resample(series, timeframe)
                indicators = self._gated(symbol, timeframe, bars)
                if indicators is not None:
                    per_tf[timeframe] = indicators
            results[symbol] = per_tf
        return results
