"""Tests for market_sentinel.core.config."""

import os

import pytest
from pydantic import ValidationError

from market_sentinel.core.config import (
    AdvisoryConfig,
    AngelOneConfig,
    CsvReplayConfig,
    PollConfig,
    ProvidersConfig,
    SentinelConfig,
    StorageConfig,
    _auto_cast,
    _merge_env_vars,
    load_config,
    service_statuses,
)
from market_sentinel.core.exceptions import ConfigError
from market_sentinel.core.models import MacdSignalMethod, StorageBackend, Timeframe


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """No stray env vars and no market-sentinel.yml in the working dir."""
    for key in list(os.environ):
        if key.startswith("MARKET_SENTINEL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class TestProvidersConfig:
    def test_defaults(self):
        c = ProvidersConfig()
        assert c.order == ["angel_one", "yahoo", "nse"]
        assert c.timeout_seconds == 8.0
        assert c.min_records == 1

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValidationError, match="Unknown providers"):
            ProvidersConfig(order=["yahoo", "bloomberg"])

    def test_empty_order_rejected(self):
        with pytest.raises(ValidationError, match="at least one provider"):
            ProvidersConfig(order=[])

    def test_duplicates_rejected(self):
        with pytest.raises(ValidationError, match="duplicates"):
            ProvidersConfig(order=["yahoo", "yahoo"])

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError, match="timeout_seconds"):
            ProvidersConfig(timeout_seconds=0)

    def test_min_records_must_be_positive(self):
        with pytest.raises(ValidationError, match="min_records"):
            ProvidersConfig(min_records=0)


class TestAngelOneConfig:
    def test_not_configured_by_default(self):
        assert not AngelOneConfig().is_configured

    def test_configured_with_key_client_and_mpin(self):
        c = AngelOneConfig(api_key="k", client_id="A123", mpin="1234")
        assert c.is_configured

    def test_numeric_mpin_coerced_to_str(self):
        c = AngelOneConfig(api_key="k", client_id="A123", mpin=1234)
        assert c.mpin == "1234"


class TestCsvReplayConfig:
    def test_path_required_when_enabled(self):
        with pytest.raises(ValidationError, match="csv.path is required"):
            CsvReplayConfig(enabled=True)


class TestPollConfig:
    def test_defaults(self):
        c = PollConfig()
        assert c.interval_seconds == 5.0
        assert c.indicator_every == 6

    def test_interval_positive(self):
        with pytest.raises(ValidationError):
            PollConfig(interval_seconds=0)


class TestStorageConfig:
    def test_default_cap(self):
        assert StorageConfig().max_records_per_symbol == 20_000

    def test_cap_must_be_positive(self):
        with pytest.raises(ValidationError, match="max_records_per_symbol"):
            StorageConfig(max_records_per_symbol=0)


class TestSentinelConfig:
    def test_defaults(self):
        c = SentinelConfig()
        assert c.symbols == ["NIFTY", "BANKNIFTY", "SENSEX"]
        assert c.analysis.min_points == 50
        assert c.analysis.timeframes == [
            Timeframe.ONE_MINUTE,
            Timeframe.FIVE_MINUTES,
            Timeframe.FIFTEEN_MINUTES,
            Timeframe.ONE_HOUR,
        ]
        assert c.analysis.macd_signal == MacdSignalMethod.SIMPLIFIED
        assert c.storage.backend == StorageBackend.MEMORY

    def test_symbols_uppercased(self):
        assert SentinelConfig(symbols=["nifty"]).symbols == ["NIFTY"]

    def test_symbols_from_comma_string(self):
        c = SentinelConfig(symbols="NIFTY, BANKNIFTY")
        assert c.symbols == ["NIFTY", "BANKNIFTY"]

    def test_invalid_symbol_rejected(self):
        with pytest.raises(ValidationError, match="alphanumeric"):
            SentinelConfig(symbols=["NIFTY;rm -rf"])


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_config()
        assert config.poll.interval_seconds == 5.0

    def test_yaml_loading(self, tmp_path):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text(
            "symbols: [NIFTY]\n"
            "providers:\n  order: [yahoo, nse]\n  timeout_seconds: 3\n"
            "poll:\n  interval_seconds: 10\n"
        )
        config = load_config(config_path=str(yaml_file))
        assert config.symbols == ["NIFTY"]
        assert config.providers.order == ["yahoo", "nse"]
        assert config.providers.timeout_seconds == 3.0
        assert config.poll.interval_seconds == 10.0

    def test_default_file_in_working_dir(self, tmp_path):
        (tmp_path / "market-sentinel.yml").write_text("poll:\n  indicator_every: 3\n")
        assert load_config().poll.indicator_every == 3

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text("poll:\n  interval_seconds: 10\n")
        monkeypatch.setenv("MARKET_SENTINEL_POLL__INTERVAL_SECONDS", "2.5")
        config = load_config(config_path=str(yaml_file))
        assert config.poll.interval_seconds == 2.5

    def test_env_nested_credentials(self, monkeypatch):
        monkeypatch.setenv("MARKET_SENTINEL_PROVIDERS__ANGEL_ONE__API_KEY", "key")
        monkeypatch.setenv("MARKET_SENTINEL_PROVIDERS__ANGEL_ONE__CLIENT_ID", "A1")
        monkeypatch.setenv("MARKET_SENTINEL_PROVIDERS__ANGEL_ONE__MPIN", "4321")
        config = load_config()
        assert config.providers.angel_one.is_configured
        assert config.providers.angel_one.mpin == "4321"

    def test_env_credentials_keep_leading_zeros(self, monkeypatch):
        monkeypatch.setenv("MARKET_SENTINEL_PROVIDERS__ANGEL_ONE__CLIENT_ID", "007")
        monkeypatch.setenv("MARKET_SENTINEL_PROVIDERS__ANGEL_ONE__MPIN", "0123")
        monkeypatch.setenv("MARKET_SENTINEL_PROVIDERS__ANGEL_ONE__TOTP", "004512")
        monkeypatch.setenv("MARKET_SENTINEL_ADVISORY__API_KEY", "0000")
        config = load_config()
        assert config.providers.angel_one.client_id == "007"
        assert config.providers.angel_one.mpin == "0123"
        assert config.providers.angel_one.totp == "004512"
        assert config.advisory.api_key == "0000"

    def test_env_numeric_settings_still_cast(self, monkeypatch):
        monkeypatch.setenv("MARKET_SENTINEL_POLL__INDICATOR_EVERY", "03")
        assert load_config().poll.indicator_every == 3

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "custom.yml"
        yaml_file.write_text("symbols: [SENSEX]\n")
        monkeypatch.setenv("MARKET_SENTINEL_CONFIG", str(yaml_file))
        assert load_config().symbols == ["SENSEX"]

    def test_missing_file_raises(self):
        with pytest.raises(ConfigError, match="not found"):
            load_config(config_path="/nonexistent/config.yml")

    def test_invalid_yaml_raises(self, tmp_path):
        yaml_file = tmp_path / "bad.yml"
        yaml_file.write_text("poll: [unclosed\n")
        with pytest.raises(ConfigError, match="Failed to parse YAML"):
            load_config(config_path=str(yaml_file))

    def test_non_mapping_yaml_raises(self, tmp_path):
        yaml_file = tmp_path / "list.yml"
        yaml_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(config_path=str(yaml_file))

    def test_validation_error_wrapped(self, tmp_path):
        yaml_file = tmp_path / "bad.yml"
        yaml_file.write_text("providers:\n  order: [nowhere]\n")
        with pytest.raises(ConfigError, match="Unknown providers"):
            load_config(config_path=str(yaml_file))


class TestEnvHelpers:
    def test_auto_cast(self):
        assert _auto_cast("true") is True
        assert _auto_cast("False") is False
        assert _auto_cast("42") == 42
        assert _auto_cast("2.5") == 2.5
        assert _auto_cast("NIFTY") == "NIFTY"

    def test_merge_env_vars_nests(self, monkeypatch):
        monkeypatch.setenv("TEST_PREFIX_A__B__C", "1")
        monkeypatch.setenv("TEST_PREFIX_A__D", "x")
        merged = _merge_env_vars({"a": {"keep": True}}, "TEST_PREFIX_")
        assert merged == {"a": {"keep": True, "b": {"c": 1}, "d": "x"}}

    def test_merge_env_vars_keeps_credentials_verbatim(self, monkeypatch):
        monkeypatch.setenv("TEST_PREFIX_BROKER__MPIN", "0123")
        monkeypatch.setenv("TEST_PREFIX_BROKER__TIMEOUT", "0123")
        merged = _merge_env_vars({}, "TEST_PREFIX_")
        assert merged == {"broker": {"mpin": "0123", "timeout": 123}}


class TestServiceStatuses:
    def test_unconfigured_services(self):
        statuses = {s.name: s for s in service_statuses(SentinelConfig())}
        assert statuses["Angel One"].status == "disconnected"
        assert statuses["Angel One"].error == "API credentials not configured"
        assert statuses["OpenRouter AI"].status == "disconnected"
        assert statuses["Yahoo Finance"].status == "connected"
        assert statuses["NSE API"].status == "connected"

    def test_configured_services(self):
        config = SentinelConfig(
            providers=ProvidersConfig(
                angel_one=AngelOneConfig(api_key="k", client_id="c", mpin="1"),
            ),
            advisory=AdvisoryConfig(api_key="sk-test"),
        )
        statuses = {s.name: s for s in service_statuses(config)}
        assert statuses["Angel One"].status == "connected"
        assert statuses["OpenRouter AI"].status == "connected"
        assert statuses["OpenRouter AI"].error is None
