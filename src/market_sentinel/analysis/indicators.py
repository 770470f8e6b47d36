"""Technical indicators over price series ordered oldest to newest.

Every function here is pure and synchronous. Degenerate inputs (too few
samples, zero volume) return documented fallback values instead of raising;
the SufficiencyGate is responsible for refusing series where those
fallbacks would be misleading.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from market_sentinel.core.config import AnalysisConfig
from market_sentinel.core.models import (
    BollingerBands,
    IndicatorSet,
    MacdSignalMethod,
    MacdValues,
    QuoteRecord,
    SupertrendValue,
    Symbol,
    Timeframe,
    TrendDirection,
)

RSI_PERIOD = 14
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
MACD_SIMPLIFIED_FACTOR = 0.9
BOLLINGER_PERIOD = 20
BOLLINGER_MULT = 2.0
BOLLINGER_FALLBACK_PCT = 0.02
SUPERTREND_PERIOD = 10
SUPERTREND_MULT = 3.0


def rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> float:
    """Wilder's Relative Strength Index.

    The first ``period`` changes seed the average gain and loss; each later
    change is folded in with ``avg = (avg * (period - 1) + delta) / period``.

    Parameters
    ----------
    prices : Sequence[float]
        Closing prices, oldest first.
    period : int
        Look-back length. Default: 14.

    Returns
    -------
    float
        RSI in [0, 100]. 50.0 when fewer than ``period + 1`` prices are
        given, 100.0 when the average loss is exactly zero.
    """
    if len(prices) < period + 1:
        return 50.0

    deltas = np.diff(np.asarray(prices, dtype=float))
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(gains[:period].sum()) / period
    avg_loss = float(losses[:period].sum()) / period
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    value = 100.0 - 100.0 / (1.0 + rs)
    return float(min(100.0, max(0.0, value)))


def _ema_series(prices: np.ndarray, period: int) -> np.ndarray:
    """Running EMA seeded with the first price."""
    multiplier = 2.0 / (period + 1)
    out = np.empty_like(prices)
    out[0] = prices[0]
    for i in range(1, len(prices)):
        out[i] = (prices[i] - out[i - 1]) * multiplier + out[i - 1]
    return out


def ema(prices: Sequence[float], period: int) -> float:
    """Exponential moving average with multiplier ``2 / (period + 1)``.

    Returns 0.0 for an empty series and the last price unchanged when
    ``period`` is at least the series length.
    """
    if len(prices) == 0:
        return 0.0
    if period >= len(prices):
        return float(prices[-1])
    return float(_ema_series(np.asarray(prices, dtype=float), period)[-1])


def macd(
    prices: Sequence[float],
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal_period: int = MACD_SIGNAL,
    method: MacdSignalMethod = MacdSignalMethod.SIMPLIFIED,
) -> MacdValues:
    """Moving Average Convergence Divergence.

    ``macd = EMA(fast) - EMA(slow)``. The signal line is either the
    single-value approximation ``macd * 0.9`` (SIMPLIFIED) or an EMA of the
    running MACD history (ROLLING_EMA). In both cases
    ``histogram = macd - signal``.
    """
    value = ema(prices, fast) - ema(prices, slow)

    if method == MacdSignalMethod.ROLLING_EMA and len(prices) > 0:
        arr = np.asarray(prices, dtype=float)
        history = _ema_series(arr, fast) - _ema_series(arr, slow)
        history[-1] = value
        signal = ema(history.tolist(), signal_period)
    else:
        signal = value * MACD_SIMPLIFIED_FACTOR

    return MacdValues(macd=value, signal=signal, histogram=value - signal)


def vwap(prices: Sequence[float], volumes: Sequence[float]) -> float:
    """Volume-weighted average price.

    Returns 0.0 for empty or mismatched inputs and the last price when the
    total volume is zero.
    """
    if len(prices) == 0 or len(prices) != len(volumes):
        return 0.0
    p = np.asarray(prices, dtype=float)
    v = np.asarray(volumes, dtype=float)
    total_volume = float(v.sum())
    if total_volume <= 0:
        return float(p[-1])
    return float(np.dot(p, v) / total_volume)


def bollinger(
    prices: Sequence[float],
    period: int = BOLLINGER_PERIOD,
    multiplier: float = BOLLINGER_MULT,
) -> BollingerBands:
    """Bollinger Bands: SMA +/- ``multiplier`` population std-devs.

    Computed over the last ``period`` prices. Shorter series fall back to
    the last price +/- 2%.
    """
    if len(prices) < period:
        last = float(prices[-1]) if len(prices) else 0.0
        return BollingerBands(
            upper=last * (1 + BOLLINGER_FALLBACK_PCT),
            middle=last,
            lower=last * (1 - BOLLINGER_FALLBACK_PCT),
        )

    window = np.asarray(prices[-period:], dtype=float)
    sma = float(window.mean())
    std = float(window.std())
    return BollingerBands(
        upper=sma + multiplier * std,
        middle=sma,
        lower=sma - multiplier * std,
    )


def supertrend(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = SUPERTREND_PERIOD,
    multiplier: float = SUPERTREND_MULT,
) -> SupertrendValue:
    """Simplified single-bar Supertrend.

    ATR is the mean true range over the last ``period`` bars, where true
    range uses the previous bar's close. Bands sit at the latest bar's
    ``(high + low) / 2`` +/- ``multiplier * ATR``. Direction is SHORT when
    the latest close is at or below the lower band, otherwise LONG; the
    value is the band for that direction.

    Fewer than ``period`` closes return the last close with LONG.
    """
    if len(closes) < period or len(closes) == 0:
        last = float(closes[-1]) if len(closes) else 0.0
        return SupertrendValue(value=last, direction=TrendDirection.LONG)

    h = np.asarray(highs, dtype=float)
    lo = np.asarray(lows, dtype=float)
    c = np.asarray(closes, dtype=float)

    start = max(1, len(c) - period)
    hi_w, lo_w, prev_c = h[start:], lo[start:], c[start - 1 : -1]
    true_range = np.maximum.reduce(
        [hi_w - lo_w, np.abs(hi_w - prev_c), np.abs(lo_w - prev_c)]
    )
    atr = float(true_range.mean()) if true_range.size else 0.0

    hl2 = (h[-1] + lo[-1]) / 2.0
    upper = float(hl2 + multiplier * atr)
    lower = float(hl2 - multiplier * atr)

    if c[-1] <= lower:
        return SupertrendValue(value=upper, direction=TrendDirection.SHORT)
    return SupertrendValue(value=lower, direction=TrendDirection.LONG)


def compute_indicator_set(
    series: Sequence[QuoteRecord],
    symbol: Symbol,
    timeframe: Timeframe = Timeframe.ONE_MINUTE,
    config: AnalysisConfig | None = None,
) -> IndicatorSet:
    """Compute every indicator for one ascending series of one symbol."""
    if not series:
        raise ValueError(f"Cannot compute indicators for {symbol}: empty series")
    config = config or AnalysisConfig()

    closes = [r.close for r in series]
    highs = [r.high for r in series]
    lows = [r.low for r in series]
    volumes = [r.volume for r in series]

    return IndicatorSet(
        symbol=symbol,
        timeframe=timeframe,
        rsi=rsi(closes),
        macd=macd(closes, method=config.macd_signal),
        vwap=vwap(closes, volumes),
        ema20=ema(closes, 20),
        ema50=ema(closes, 50),
        bollinger=bollinger(closes),
        supertrend=supertrend(highs, lows, closes),
        last_price=closes[-1],
    )
