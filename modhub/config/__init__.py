"""
modhub Configuration - TOML-based settings.

This module provides:
- The declared schema of every settings section
- Loading with validation and defaults
- Runtime typed access with auto-flush
- Default config file generation

Example usage:
    import modhub.config

    settings = modhub.config.load()
    print(settings.marketplace.url)      # Read
    settings.marketplace.timeout = 10.0  # Write (auto-flushes)
"""

import os
from pathlib import Path

from modhub.config.runtime import SectionProxy, Settings, SettingsError, load_settings
from modhub.config.schema import SETTINGS_SCHEMA, ConfigField
from modhub.config.toml_handler import generate_default_config

# Default config file path
DEFAULT_CONFIG_FILE = Path("config/modhub.toml")

CONFIG_ENV_VAR = "MODHUB_CONFIG"


class ConfigError(Exception):
    """Base exception for config API errors."""

    pass


def config_path(explicit: str | Path | None = None) -> Path:
    """
    Pick the settings file: explicit argument, then $MODHUB_CONFIG, then the default.
    """
    if explicit:
        return Path(explicit)
    env_value = os.environ.get(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value)
    return DEFAULT_CONFIG_FILE


def load(path: str | Path | None = None) -> Settings:
    """
    Load settings.

    Raises:
        ConfigError: If the settings file is invalid
    """
    try:
        return load_settings(config_path(path))
    except SettingsError as e:
        raise ConfigError(str(e)) from e


def init_config(path: str | Path | None = None, overwrite: bool = False) -> Path:
    """
    Write a commented default settings file.

    Returns:
        Path of the written file

    Raises:
        ConfigError: If the file exists and overwrite is False
    """
    target = config_path(path)
    if target.exists() and not overwrite:
        raise ConfigError(f"Config file already exists: {target}")

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(generate_default_config(), encoding="utf-8")
    return target


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_FILE",
    "SETTINGS_SCHEMA",
    "ConfigError",
    "ConfigField",
    "SectionProxy",
    "Settings",
    "config_path",
    "init_config",
    "load",
]
