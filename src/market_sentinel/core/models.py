"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

Symbol = str
ProviderName = str

SYMBOL_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

# --- Enumerations ---


class Timeframe(StrEnum):
    """Bar widths used for multi-timeframe analysis."""

    ONE_MINUTE = "1m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    ONE_HOUR = "1h"
    ONE_DAY = "1d"

    @property
    def seconds(self) -> int:
        return _TIMEFRAME_SECONDS[self]


_TIMEFRAME_SECONDS: dict[Timeframe, int] = {
    Timeframe.ONE_MINUTE: 60,
    Timeframe.FIVE_MINUTES: 300,
    Timeframe.FIFTEEN_MINUTES: 900,
    Timeframe.ONE_HOUR: 3600,
    Timeframe.ONE_DAY: 86400,
}

DEFAULT_TIMEFRAMES: tuple[Timeframe, ...] = (
    Timeframe.ONE_MINUTE,
    Timeframe.FIVE_MINUTES,
    Timeframe.FIFTEEN_MINUTES,
    Timeframe.ONE_HOUR,
)


class SignalType(StrEnum):
    """Directional trading decision."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class TrendDirection(StrEnum):
    """Supertrend direction."""

    LONG = "LONG"
    SHORT = "SHORT"


class MacdSignalMethod(StrEnum):
    """How the MACD signal line is derived."""

    SIMPLIFIED = "simplified"
    ROLLING_EMA = "rolling_ema"


class StorageBackend(StrEnum):
    """Supported quote repository backends."""

    MEMORY = "memory"
    JSON = "json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Quote Models ---


class QuoteRecord(BaseModel):
    """One instrument observation: the canonical quote record.

    Every provider adapter must produce data in this format. ``open`` may be
    None when the source does not report it; the SeriesEnricher fills it in
    before storage. High/low consistency with open/close is deliberately
    not enforced because providers violate it.
    """

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    open: float | None = None
    high: float
    low: float
    close: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    timestamp: datetime = Field(default_factory=_utcnow)
    source: str = "unknown"

    @field_validator("symbol")
    @classmethod
    def symbol_allowed(cls, v: str) -> str:
        if not SYMBOL_PATTERN.match(v):
            raise ValueError(f"symbol must be alphanumeric/underscore, got: {v!r}")
        return v

    @field_validator("open", mode="before")
    @classmethod
    def open_normalized(cls, v: Any) -> float | None:
        """Unparseable or non-finite opens are treated as absent."""
        if v is None:
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(value):
            return None
        return round(value, 2)

    @field_validator("high", "low", "close", "change", "change_percent")
    @classmethod
    def finite_two_places(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"price fields must be finite, got {v}")
        return round(v, 2)

    @field_validator("volume")
    @classmethod
    def volume_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"volume must be >= 0, got {v}")
        return v

    @field_validator("timestamp")
    @classmethod
    def timestamp_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def has_usable_open(self) -> bool:
        return self.open is not None and self.open > 0


# --- Indicator Models ---


class MacdValues(BaseModel):
    model_config = ConfigDict(frozen=True)

    macd: float
    signal: float
    histogram: float


class BollingerBands(BaseModel):
    model_config = ConfigDict(frozen=True)

    upper: float
    middle: float
    lower: float


class SupertrendValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float
    direction: TrendDirection


class IndicatorSet(BaseModel):
    """Technical indicators for one (symbol, timeframe) pair."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    timeframe: Timeframe = Timeframe.ONE_MINUTE
    rsi: float
    macd: MacdValues
    vwap: float
    ema20: float
    ema50: float
    bollinger: BollingerBands
    supertrend: SupertrendValue
    last_price: float
    computed_at: datetime = Field(default_factory=_utcnow)

    @field_validator("rsi")
    @classmethod
    def rsi_in_range(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"rsi must be in [0, 100], got {v}")
        return v


# --- Signal Models ---


class SignalDecision(BaseModel):
    """Directional decision derived from one IndicatorSet."""

    model_config = ConfigDict(frozen=True)

    signal: SignalType
    strength: int
    reasoning: list[str] = []
    score: int = 0

    @field_validator("strength")
    @classmethod
    def strength_in_range(cls, v: int) -> int:
        if not 10 <= v <= 100:
            raise ValueError(f"strength must be in [10, 100], got {v}")
        return v

    @property
    def reasoning_text(self) -> str:
        return ", ".join(self.reasoning)


class SignalCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    buy: int = 0
    sell: int = 0
    hold: int = 0

    @property
    def total(self) -> int:
        return self.buy + self.sell + self.hold


class ConsensusDecision(BaseModel):
    """Multi-timeframe aggregate decision for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    signal: SignalType
    strength: int
    counts: SignalCounts
    timeframes: dict[Timeframe, SignalDecision] = {}

    @field_validator("strength")
    @classmethod
    def strength_in_range(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"strength must be in [0, 100], got {v}")
        return v
