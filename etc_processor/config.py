"""YAML configuration loader for the ETC data processor.

Settings live in one file (default: config/processor.yaml). JSON is
accepted too, since every JSON document is valid YAML. A missing file
means "all defaults"; environment variables override file values:

  ETC_CONFIG      path of the config file
  ETC_DB_PATH     database_path
  ETC_WATCH_DIR   watch_dir
  ETC_LOG_LEVEL   log_level
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = Path("config") / "processor.yaml"

DEFAULTS: dict = {
    "database_path": "etc_data.db",
    "watch_dir": "import",
    "log_level": "INFO",
    "skip_duplicates": False,
    "default_account_id": None,
    "stability_seconds": 10,
}

_ENV_OVERRIDES = {
    "ETC_DB_PATH": "database_path",
    "ETC_WATCH_DIR": "watch_dir",
    "ETC_LOG_LEVEL": "log_level",
}

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigError(ValueError):
    """Configuration file is malformed or holds invalid values."""


class Config:
    """Loads processor settings lazily and exposes them as properties."""

    def __init__(self, config_path: Path | str | None = None, env: dict | None = None):
        self.env = os.environ if env is None else env
        if config_path is None:
            config_path = self.env.get("ETC_CONFIG", DEFAULT_CONFIG_PATH)
        self.config_path = Path(config_path)
        self._settings: dict | None = None

    def _load(self) -> dict:
        if not self.config_path.exists():
            return {}
        with open(self.config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must hold a mapping: {self.config_path}")
        return data

    @property
    def settings(self) -> dict:
        if self._settings is None:
            merged = dict(DEFAULTS)
            merged.update(self._load())
            for env_key, setting in _ENV_OVERRIDES.items():
                value = self.env.get(env_key)
                if value:
                    merged[setting] = value
            self._settings = merged
        return self._settings

    @property
    def database_path(self) -> str:
        return str(self.settings["database_path"])

    @property
    def watch_dir(self) -> Path:
        return Path(self.settings["watch_dir"])

    @property
    def log_level(self) -> str:
        return str(self.settings["log_level"]).upper()

    @property
    def skip_duplicates(self) -> bool:
        return bool(self.settings["skip_duplicates"])

    @property
    def default_account_id(self) -> str | None:
        return self.settings["default_account_id"]

    @property
    def stability_seconds(self) -> int:
        return int(self.settings["stability_seconds"])

    def validate(self) -> None:
        """Raise ConfigError if any setting is out of range."""
        if self.log_level not in _LOG_LEVELS:
            raise ConfigError(f"invalid log_level: {self.settings['log_level']}")
        try:
            stability = self.stability_seconds
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid stability_seconds: {e}") from e
        if stability < 0:
            raise ConfigError(f"invalid stability_seconds: {stability}")
        if not self.database_path:
            raise ConfigError("database_path cannot be empty")

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)
