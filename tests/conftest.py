"""Shared pytest fixtures for market-sentinel."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

import pytest

from market_sentinel.core.config import AnalysisConfig, SentinelConfig
from market_sentinel.core.models import (
    BollingerBands,
    IndicatorSet,
    MacdValues,
    QuoteRecord,
    SupertrendValue,
    TrendDirection,
)

BASE_TIME = datetime(2024, 6, 21, 4, 0, 0, tzinfo=timezone.utc)

SeriesFactory = Callable[..., list[QuoteRecord]]


def build_series(
    closes: Sequence[float],
    symbol: str = "NIFTY",
    start: datetime = BASE_TIME,
    spacing: timedelta = timedelta(minutes=1),
    volume: int = 1000,
    spread: float = 0.5,
) -> list[QuoteRecord]:
    """Ascending QuoteRecords with the given closes, one per ``spacing``."""
    return [
        QuoteRecord(
            symbol=symbol,
            open=close,
            high=close + spread,
            low=close - spread,
            close=close,
            volume=volume,
            timestamp=start + i * spacing,
            source="test",
        )
        for i, close in enumerate(closes)
    ]


@pytest.fixture
def make_series() -> SeriesFactory:
    return build_series


@pytest.fixture
def rising_series() -> list[QuoteRecord]:
    """60 one-minute bars rising by 1.0 from 100."""
    return build_series([100.0 + i for i in range(60)])


@pytest.fixture
def flat_series() -> list[QuoteRecord]:
    """60 one-minute bars at a constant 100.00."""
    return build_series([100.0] * 60)


@pytest.fixture
def sample_quote() -> QuoteRecord:
    return QuoteRecord(
        symbol="NIFTY",
        open=22000.0,
        high=22100.5,
        low=21950.25,
        close=22055.7,
        change=55.7,
        change_percent=0.25,
        volume=125000,
        timestamp=BASE_TIME,
        source="test",
    )


@pytest.fixture
def analysis_config() -> AnalysisConfig:
    return AnalysisConfig()


@pytest.fixture
def default_config() -> SentinelConfig:
    return SentinelConfig()


def make_indicators(
    rsi: float = 50.0,
    macd: float = 1.0,
    signal: float = 0.9,
    ema20: float = 101.0,
    ema50: float = 100.0,
    direction: TrendDirection = TrendDirection.LONG,
    symbol: str = "NIFTY",
) -> IndicatorSet:
    """IndicatorSet with scorer-relevant fields set explicitly."""
    return IndicatorSet(
        symbol=symbol,
        rsi=rsi,
        macd=MacdValues(macd=macd, signal=signal, histogram=macd - signal),
        vwap=100.0,
        ema20=ema20,
        ema50=ema50,
        bollinger=BollingerBands(upper=102.0, middle=100.0, lower=98.0),
        supertrend=SupertrendValue(value=99.0, direction=direction),
        last_price=100.0,
    )


@pytest.fixture
def indicators_factory() -> Callable[..., IndicatorSet]:
    return make_indicators
