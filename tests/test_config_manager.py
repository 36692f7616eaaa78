"""
Unit Tests – Configuration Manager
=====================================
Packaged defaults, schema validation, deep merge and environment
overrides.
"""

from __future__ import annotations

import logging

import pytest
from jsonschema import ValidationError

from tradelab.config import ConfigurationManager, configure_logging
from tradelab.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("TRADELAB_LOG_LEVEL", raising=False)
    monkeypatch.delenv("TRADELAB_MAX_WORKERS", raising=False)


class TestDefaults:

    def test_loads_packaged_defaults(self):
        manager = ConfigurationManager()
        assert manager.get_optimizer_settings()["max_combinations"] == 10000
        assert manager.get_optimizer_settings()["max_workers"] is None
        assert manager.get_backtest_defaults()["commission_rate"] == 0.015
        assert manager.get_backtest_defaults()["slippage"] == 0.1
        assert manager.get_data_source_settings()["fallback_enabled"] is True
        assert manager.get_history_limit() == 20

    def test_defaults_validate(self):
        manager = ConfigurationManager()
        assert manager.validate_config(manager.default_config)


class TestOverrides:

    def test_caller_overrides_merge_deeply(self):
        manager = ConfigurationManager({"optimizer": {"max_workers": 2}})
        settings = manager.get_optimizer_settings()
        assert settings["max_workers"] == 2
        assert settings["max_combinations"] == 10000

    def test_invalid_override_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            ConfigurationManager({"logging": {"level": "LOUD"}})
        assert exc.value.code == 500
        assert exc.value.detail.startswith("Configuration validation failed")
        assert isinstance(exc.value.__cause__, ValidationError)

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError):
            ConfigurationManager({"backtest": {"leverage": 3}})

    def test_full_commission_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            ConfigurationManager({"backtest": {"commission_rate": 100}})
        assert "below 100 percent" in exc.value.detail

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TRADELAB_MAX_WORKERS", "4")
        monkeypatch.setenv("TRADELAB_LOG_LEVEL", "debug")
        manager = ConfigurationManager()
        assert manager.get_optimizer_settings()["max_workers"] == 4
        assert manager.get_logging_settings()["level"] == "DEBUG"

    def test_bad_worker_count(self, monkeypatch):
        monkeypatch.setenv("TRADELAB_MAX_WORKERS", "many")
        with pytest.raises(ConfigurationError):
            ConfigurationManager()

    def test_merge_configs(self):
        manager = ConfigurationManager()
        merged = manager.merge_configs({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}}, {"d": 4})
        assert merged == {"a": {"b": 1, "c": 3}, "d": 4}


class TestConfigureLogging:

    def test_applies_level(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging({"level": "WARNING", "format": "%(message)s"})
            assert root.level == logging.WARNING
        finally:
            root.setLevel(previous)
