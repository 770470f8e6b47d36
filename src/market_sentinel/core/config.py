"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from market_sentinel.core.exceptions import ConfigError
from market_sentinel.core.models import (
    DEFAULT_TIMEFRAMES,
    SYMBOL_PATTERN,
    MacdSignalMethod,
    StorageBackend,
    Timeframe,
)

KNOWN_PROVIDERS = ("angel_one", "yahoo", "nse", "csv")

# Env values under these keys are taken verbatim; PINs and OTPs keep leading zeros
CREDENTIAL_KEYS = frozenset({"api_key", "client_id", "mpin", "totp"})

# Newest records per symbol kept in memory and read back for analysis
MAX_RECORDS_PER_SYMBOL = 20_000


class YahooConfig(BaseModel):
    """Yahoo Finance chart API configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    base_url: str = "https://query1.finance.yahoo.com"
    requests_per_second: int = 4

    @field_validator("requests_per_second")
    @classmethod
    def rate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("requests_per_second must be >= 1")
        return v


class AngelOneConfig(BaseModel):
    """Angel One SmartAPI credentials and endpoint."""

    # YAML may still hand over an unquoted numeric client id
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    enabled: bool = True
    api_key: str = ""
    client_id: str = ""
    mpin: str = ""
    totp: str = ""
    base_url: str = "https://apiconnect.angelbroking.com"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.client_id and self.mpin)


class NseConfig(BaseModel):
    """NSE India public index API configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    base_url: str = "https://www.nseindia.com/api"


class CsvReplayConfig(BaseModel):
    """Offline replay of recorded quotes."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    path: str | None = None

    @model_validator(mode="after")
    def path_required_when_enabled(self) -> CsvReplayConfig:
        if self.enabled and not self.path:
            raise ValueError("csv.path is required when csv replay is enabled")
        return self


class ProvidersConfig(BaseModel):
    """Provider priority and per-provider settings."""

    model_config = ConfigDict(frozen=True)

    order: list[str] = ["angel_one", "yahoo", "nse"]
    timeout_seconds: float = 8.0
    min_records: int = 1
    yahoo: YahooConfig = YahooConfig()
    angel_one: AngelOneConfig = AngelOneConfig()
    nse: NseConfig = NseConfig()
    csv: CsvReplayConfig = CsvReplayConfig()

    @field_validator("order")
    @classmethod
    def order_known(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("providers.order must list at least one provider")
        unknown = [name for name in v if name not in KNOWN_PROVIDERS]
        if unknown:
            raise ValueError(
                f"Unknown providers {unknown}; expected any of {list(KNOWN_PROVIDERS)}"
            )
        if len(set(v)) != len(v):
            raise ValueError("providers.order must not contain duplicates")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v

    @field_validator("min_records")
    @classmethod
    def min_records_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("min_records must be >= 1")
        return v


class PollConfig(BaseModel):
    """Poll loop cadence."""

    model_config = ConfigDict(frozen=True)

    interval_seconds: float = 5.0
    indicator_every: int = 6

    @field_validator("interval_seconds")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_seconds must be > 0")
        return v

    @field_validator("indicator_every")
    @classmethod
    def every_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("indicator_every must be >= 1")
        return v


class AnalysisConfig(BaseModel):
    """Sufficiency thresholds and indicator options."""

    model_config = ConfigDict(frozen=True)

    min_points: int = 50
    min_price_range: float = 1.0
    min_std_dev: float = 0.001
    min_unique_timestamps: int = 10
    timeframes: list[Timeframe] = list(DEFAULT_TIMEFRAMES)
    macd_signal: MacdSignalMethod = MacdSignalMethod.SIMPLIFIED
    high_confidence_strength: int = 70

    @field_validator("timeframes")
    @classmethod
    def timeframes_not_empty(cls, v: list[Timeframe]) -> list[Timeframe]:
        if not v:
            raise ValueError("analysis.timeframes must not be empty")
        return v


class AdvisoryConfig(BaseModel):
    """OpenRouter advisory generator configuration."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    enabled: bool = False
    api_key: str = ""
    base_url: str = "https://openrouter.ai/api/v1/chat/completions"
    model: str = "mistralai/mistral-7b-instruct:free"
    timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class StorageConfig(BaseModel):
    """Quote repository configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.MEMORY
    data_dir: str = "./data"
    max_records_per_symbol: int = MAX_RECORDS_PER_SYMBOL

    @field_validator("max_records_per_symbol")
    @classmethod
    def cap_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_records_per_symbol must be >= 1")
        return v


class SentinelConfig(BaseModel):
    """Root configuration for the entire market-sentinel system."""

    model_config = ConfigDict(frozen=True)

    symbols: list[str] = ["NIFTY", "BANKNIFTY", "SENSEX"]
    providers: ProvidersConfig = ProvidersConfig()
    poll: PollConfig = PollConfig()
    analysis: AnalysisConfig = AnalysisConfig()
    advisory: AdvisoryConfig = AdvisoryConfig()
    storage: StorageConfig = StorageConfig()

    @field_validator("symbols", mode="before")
    @classmethod
    def symbols_from_csv_string(cls, v: object) -> object:
        """Env vars deliver symbol lists as comma-separated strings."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("symbols")
    @classmethod
    def symbols_allowed(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("symbols must contain at least one symbol")
        bad = [s for s in v if not SYMBOL_PATTERN.match(s)]
        if bad:
            raise ValueError(f"symbols must be alphanumeric/underscore: {bad}")
        return [s.upper() for s in v]


class ServiceStatus(BaseModel):
    """Availability of one external service, as seen from configuration."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: Literal["connected", "disconnected", "error"]
    error: str | None = None


def service_statuses(config: SentinelConfig) -> list[ServiceStatus]:
    """Report which external services are usable with the current config."""
    angel = config.providers.angel_one
    statuses = [
        ServiceStatus(
            name="Angel One",
            status="connected" if angel.enabled and angel.is_configured else "disconnected",
            error=None if angel.is_configured else "API credentials not configured",
        ),
        ServiceStatus(
            name="OpenRouter AI",
            status="connected" if config.advisory.is_configured else "disconnected",
            error=None if config.advisory.is_configured else "API key not configured",
        ),
        ServiceStatus(
            name="Yahoo Finance",
            status="connected" if config.providers.yahoo.enabled else "disconnected",
            error=None if config.providers.yahoo.enabled else "Service disabled",
        ),
        ServiceStatus(
            name="NSE API",
            status="connected" if config.providers.nse.enabled else "disconnected",
            error=None if config.providers.nse.enabled else "Service disabled",
        ),
    ]
    return statuses


def load_config(
    config_path: str | None = None,
    env_prefix: str = "MARKET_SENTINEL_",
) -> SentinelConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (MARKET_SENTINEL_POLL__INTERVAL_SECONDS, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        MARKET_SENTINEL_PROVIDERS__ANGEL_ONE__API_KEY=xyz
            ->  providers.angel_one.api_key = "xyz"
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return SentinelConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("MARKET_SENTINEL_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from MARKET_SENTINEL_CONFIG not found: {env_path}",
                context={"field": "MARKET_SENTINEL_CONFIG", "value": env_path},
            )
        return p

    default = Path("market-sentinel.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    Credential keys are left as strings.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # MARKET_SENTINEL_CONFIG names the file, it is not a setting
        if parts == ["config"]:
            continue

        cast_value = value if parts[-1] in CREDENTIAL_KEYS else _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
