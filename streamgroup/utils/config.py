"""
Configuration management for streamgroup.

Handles loading and merging configuration from:
- Built-in defaults
- The repository configuration file (config/default.yaml)
- A user-supplied configuration file
- Environment variables
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULTS: Dict[str, Any] = {
    "redis": {
        "host": "127.0.0.1",
        "port": 6379,
        "db": 0,
    },
    "stream": {
        "key": "numbers",
        "group": "primes",
    },
    "fleet": {
        "members": 10,
        "name_prefix": "WORKER",
    },
    "producer": {
        "min_interval_ms": 1000,
        "max_interval_ms": 2000,
        "field": "n",
    },
    "chaos": {
        "kill_odds": 11,
        "min_sleep_ms": 1000,
        "max_sleep_ms": 2000,
    },
    "consumer": {
        "initial_block_ms": 100,
        "max_idle_retries": 5,
        "min_batch": 1,
        "max_batch": 6,
    },
    "logging": {
        "level": "INFO",
        "format": "console",
    },
}

# (environment variable, config key, converter)
ENV_OVERRIDES = (
    ("REDIS_HOST", "redis.host", str),
    ("REDIS_PORT", "redis.port", int),
    ("REDIS_DB", "redis.db", int),
    ("STREAM_KEY", "stream.key", str),
    ("STREAM_GROUP", "stream.group", str),
    ("FLEET_MEMBERS", "fleet.members", int),
    ("LOG_LEVEL", "logging.level", str),
    ("LOG_FORMAT", "logging.format", str),
)


class Config:
    """Configuration manager for streamgroup."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to an additional YAML configuration file.
        """
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULTS)
        self._load_default_config()

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_default_config(self) -> None:
        """Load the repository configuration file when present."""
        default_config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"
        if default_config_path.exists():
            self._load_config_file(str(default_config_path))

    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}
            self._merge_config(file_config)

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        """Deep merge new configuration into existing configuration."""
        self._config = self._deep_merge(self._config, new_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        for env_name, key, convert in ENV_OVERRIDES:
            if value := os.getenv(env_name):
                self.set(key, convert(value))

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "redis.port")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Get entire configuration as dictionary."""
        return copy.deepcopy(self._config)


_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get global configuration instance.

    Args:
        config_file: Optional configuration file path

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
