"""
Runtime Configuration Access.

This module provides attribute access to the sections of the settings file.

Key features:
- SectionProxy with attribute-based reads
- Validation and auto-flush to the TOML file on write
- Thread-safe flushes with a per-file lock
"""

import threading
from pathlib import Path
from typing import Any

from modhub.config.schema import SETTINGS_SCHEMA, validate_section
from modhub.config.toml_handler import read_toml, write_toml


class SettingsError(Exception):
    """Raised when settings cannot be loaded or flushed."""

    pass


# One lock per settings file, shared by every proxy writing into it
_file_locks: dict[Path, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(config_file: Path) -> threading.Lock:
    with _file_locks_guard:
        key = config_file.resolve()
        if key not in _file_locks:
            _file_locks[key] = threading.Lock()
        return _file_locks[key]


class SectionProxy:
    """
    Proxy object for one settings section.

    Reads come from an in-memory copy validated at load time. Writes are
    validated against the schema and flushed to the file immediately when
    the proxy is bound to one.

    Example:
        market = SectionProxy('marketplace', values, config_file)
        market.url                        # Read
        market.timeout = 10.0             # Write (auto-flushes)
    """

    def __init__(
        self,
        section: str,
        values: dict[str, Any],
        config_file: Path | None = None,
    ):
        """
        Initialize SectionProxy.

        Args:
            section: Section name declared in SETTINGS_SCHEMA
            values: Already validated values of that section
            config_file: File to flush writes into (None keeps writes in memory)
        """
        # Use object.__setattr__ to avoid triggering our custom __setattr__
        object.__setattr__(self, "_section", section)
        object.__setattr__(self, "_schema", SETTINGS_SCHEMA[section])
        object.__setattr__(self, "_config_file", config_file)
        object.__setattr__(self, "_cache", dict(values))

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            return object.__getattribute__(self, name)

        if name not in self._schema:
            raise AttributeError(
                f"Configuration field '{name}' not found in section [{self._section}]"
            )

        return self._cache[name]

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return

        if name not in self._schema:
            raise AttributeError(
                f"Configuration field '{name}' not found in section [{self._section}]"
            )

        field = self._schema[name]
        field.validate(value)
        if field.type_ is float:
            value = float(value)

        self._cache[name] = value
        if self._config_file is not None:
            self._flush()

    def _flush(self) -> None:
        """Write this section back into the settings file."""
        with _lock_for(self._config_file):
            try:
                data = read_toml(self._config_file) if self._config_file.exists() else {}
                data[self._section] = self._cache.copy()
                write_toml(self._config_file, data)
            except Exception as e:
                raise SettingsError(f"Failed to flush config to file: {e}") from e

    def __repr__(self) -> str:
        return f"SectionProxy({self._section}, {self._cache})"


class Settings:
    """
    All modhub settings, one SectionProxy per section.

    Relative paths in the [modules] and [cache] sections are resolved
    against ``base_dir`` (the directory holding the settings file).
    """

    def __init__(self, data: dict[str, dict[str, Any]], config_file: Path | None = None):
        for section in data:
            if section not in SETTINGS_SCHEMA:
                raise SettingsError(f"Unknown configuration section: {section}")

        self.config_file = config_file
        self.base_dir = config_file.parent if config_file is not None else Path.cwd()
        self._sections: dict[str, SectionProxy] = {}

        for section in SETTINGS_SCHEMA:
            values = validate_section(section, data.get(section, {}))
            self._sections[section] = SectionProxy(section, values, config_file)

    def __getattr__(self, name: str) -> SectionProxy:
        sections = self.__dict__.get("_sections", {})
        if name in sections:
            return sections[name]
        raise AttributeError(f"Unknown configuration section: {name}")

    def resolve_path(self, value: str) -> Path:
        """Resolve a configured path relative to the settings file."""
        path = Path(value).expanduser()
        return path if path.is_absolute() else self.base_dir / path

    @property
    def modules_dir(self) -> Path:
        return self.resolve_path(self.modules.directory)

    @property
    def state_file(self) -> Path:
        return self.resolve_path(self.modules.state_file)

    @property
    def cache_dir(self) -> Path:
        return self.resolve_path(self.cache.directory)


def load_settings(config_file: Path | None = None) -> Settings:
    """
    Load settings from a TOML file.

    A missing file yields the defaults (bound to that path so later writes
    create it).

    Raises:
        SettingsError: If the file is unreadable or fails validation
    """
    if config_file is None:
        return Settings({})

    try:
        data = read_toml(config_file) if config_file.exists() else {}
        return Settings(data, config_file)
    except SettingsError:
        raise
    except Exception as e:
        raise SettingsError(f"Failed to load config: {e}") from e
