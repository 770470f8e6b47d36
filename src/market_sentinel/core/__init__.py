"""market_sentinel.core: Foundation types, config, and exceptions."""

from market_sentinel.core.config import (
    AdvisoryConfig,
    AnalysisConfig,
    AngelOneConfig,
    CsvReplayConfig,
    NseConfig,
    PollConfig,
    ProvidersConfig,
    SentinelConfig,
    ServiceStatus,
    StorageConfig,
    YahooConfig,
    load_config,
    service_statuses,
)
from market_sentinel.core.exceptions import (
    AdvisoryError,
    AuthenticationError,
    ConfigError,
    InvalidSymbolError,
    MarketSentinelError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderResponseError,
    StorageError,
)
from market_sentinel.core.models import (
    DEFAULT_TIMEFRAMES,
    SYMBOL_PATTERN,
    BollingerBands,
    ConsensusDecision,
    IndicatorSet,
    MacdSignalMethod,
    MacdValues,
    ProviderName,
    QuoteRecord,
    SignalCounts,
    SignalDecision,
    SignalType,
    StorageBackend,
    SupertrendValue,
    Symbol,
    Timeframe,
    TrendDirection,
)

__all__ = [
    # Type aliases
    "Symbol",
    "ProviderName",
    "SYMBOL_PATTERN",
    "DEFAULT_TIMEFRAMES",
    # Enums
    "Timeframe",
    "SignalType",
    "TrendDirection",
    "MacdSignalMethod",
    "StorageBackend",
    # Quote models
    "QuoteRecord",
    # Indicator models
    "MacdValues",
    "BollingerBands",
    "SupertrendValue",
    "IndicatorSet",
    # Signal models
    "SignalDecision",
    "SignalCounts",
    "ConsensusDecision",
    # Config
    "SentinelConfig",
    "ProvidersConfig",
    "YahooConfig",
    "AngelOneConfig",
    "NseConfig",
    "CsvReplayConfig",
    "PollConfig",
    "AnalysisConfig",
    "AdvisoryConfig",
    "StorageConfig",
    "ServiceStatus",
    "load_config",
    "service_statuses",
    # Exceptions
    "MarketSentinelError",
    "ConfigError",
    "ProviderError",
    "ProviderNotConfiguredError",
    "AuthenticationError",
    "ProviderResponseError",
    "InvalidSymbolError",
    "StorageError",
    "AdvisoryError",
]
