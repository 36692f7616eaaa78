"""
Configuration Manager for TradeLab
Handles loading, validation, and merging of runtime configuration
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from jsonschema import ValidationError, validate

from tradelab.exceptions import ConfigurationError


@dataclass
class ConfigPaths:
    """Configuration file paths"""
    CONFIG_DIR = Path(__file__).resolve().parent
    DEFAULT_CONFIG = CONFIG_DIR / "default_config.json"
    CONFIG_SCHEMA = CONFIG_DIR / "config_schema.json"


class ConfigurationManager:
    """
    Manages packaged defaults, environment overrides and caller overrides
    """

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        load_dotenv()
        self.default_config = self._load_default_config()
        self.schema = self._load_schema()
        self.config = self.get_config(overrides)

    def _load_default_config(self) -> Dict[str, Any]:
        """Load default configuration from file"""
        try:
            with open(ConfigPaths.DEFAULT_CONFIG, 'r') as f:
                return json.load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Default config not found at {ConfigPaths.DEFAULT_CONFIG}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in default config: {e}")

    def _load_schema(self) -> Dict[str, Any]:
        """Load configuration JSON schema"""
        try:
            with open(ConfigPaths.CONFIG_SCHEMA, 'r') as f:
                return json.load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Config schema not found at {ConfigPaths.CONFIG_SCHEMA}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config schema: {e}")

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """
        Validate configuration against JSON schema

        Args:
            config: Configuration dictionary to validate

        Returns:
            bool: True if valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        try:
            validate(instance=config, schema=self.schema)
            self._validate_capital_floor(config)
            return True
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e.message}") from e

    def _validate_capital_floor(self, config: Dict[str, Any]) -> None:
        """A full-size position must still be able to pay its commission"""
        backtest = config.get('backtest', {})
        if backtest.get('commission_rate', 0) >= 100:
            raise ValidationError("commission_rate must be below 100 percent")

    def merge_configs(self, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge multiple configuration dictionaries
        Later configs override earlier ones
        """
        def deep_merge(base: Dict, override: Dict) -> Dict:
            """Recursively merge two dictionaries"""
            result = base.copy()

            for key, value in override.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = deep_merge(result[key], value)
                else:
                    result[key] = value

            return result

        result = {}
        for config in configs:
            result = deep_merge(result, config)

        return result

    def _env_overrides(self) -> Dict[str, Any]:
        """Overrides read from TRADELAB_* environment variables"""
        overrides: Dict[str, Any] = {}

        level = os.getenv("TRADELAB_LOG_LEVEL")
        if level:
            overrides['logging'] = {'level': level.strip().upper()}

        workers = os.getenv("TRADELAB_MAX_WORKERS")
        if workers:
            try:
                overrides['optimizer'] = {'max_workers': int(workers)}
            except ValueError:
                raise ConfigurationError(f"TRADELAB_MAX_WORKERS must be an integer, got {workers!r}")

        return overrides

    def get_config(self, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Final configuration
        Merges: default -> environment -> caller overrides
        """
        config = self.merge_configs(self.default_config, self._env_overrides())
        if overrides:
            config = self.merge_configs(config, overrides)

        self.validate_config(config)
        return config

    def get_backtest_defaults(self) -> Dict[str, Any]:
        return dict(self.config.get('backtest', {}))

    def get_optimizer_settings(self) -> Dict[str, Any]:
        return dict(self.config.get('optimizer', {}))

    def get_data_source_settings(self) -> Dict[str, Any]:
        return dict(self.config.get('data_source', {}))

    def get_history_limit(self) -> int:
        return self.config.get('history', {}).get('default_limit', 20)

    def get_logging_settings(self) -> Dict[str, Any]:
        return dict(self.config.get('logging', {}))


def configure_logging(settings: Optional[Dict[str, Any]] = None) -> None:
    """Apply the configured level and format to the root logger"""
    settings = settings if settings is not None else get_config_manager().get_logging_settings()
    level = getattr(logging, str(settings.get('level', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.get('format'))
    logging.getLogger().setLevel(level)


# Singleton instance
_config_manager = None

def get_config_manager() -> ConfigurationManager:
    """Get singleton ConfigurationManager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigurationManager()
    return _config_manager
