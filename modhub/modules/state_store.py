"""
Module State Store.

This module persists the "database" half of every module descriptor:
whether it is installed, active, active on the variant flag, and which
version was installed.

Key features:
- TOML-backed storage written with tomlkit
- Stable numeric ids assigned on first install
- The installed/active invariant enforced on every write
- Thread-safe updates
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from modhub.config.toml_handler import TOMLError, read_toml, write_toml

logger = logging.getLogger(__name__)


class StateError(Exception):
    """Raised when a state change would break the installed/active invariant."""

    pass


@dataclass(frozen=True)
class DatabaseState:
    """
    Persisted state of one module.

    Attributes:
        id: Numeric id (0 when the module was never installed)
        installed: Module is installed
        active: Module is enabled
        active_on_variant: Module is enabled on the variant flag
        version: Installed version, None when never installed
    """

    id: int = 0
    installed: bool = False
    active: bool = False
    active_on_variant: bool = False
    version: str | None = None


class StateStore:
    """
    TOML file of module states.

    The file layout is::

        [modules.mailalert]
        id = 3
        installed = true
        active = true
        active_on_variant = true
        version = "1.2.0"
    """

    def __init__(self, state_file: Path):
        self.state_file = state_file
        self._lock = threading.Lock()
        self._states: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if not self.state_file.exists():
            self._states = {}
            return
        try:
            data = read_toml(self.state_file)
        except TOMLError as e:
            raise StateError(f"Failed to load module state: {e}") from e
        self._states = {name: dict(values) for name, values in data.get("modules", {}).items()}

    def _draft(self) -> dict[str, dict[str, Any]]:
        return {name: dict(values) for name, values in self._states.items()}

    def _commit(self, states: dict[str, dict[str, Any]]) -> None:
        """Write ``states`` and adopt them; on failure the current state is kept."""
        data = {
            "modules": {
                name: {k: v for k, v in values.items() if v is not None}
                for name, values in sorted(states.items())
            }
        }
        try:
            write_toml(self.state_file, data)
        except TOMLError as e:
            raise StateError(f"Failed to save module state: {e}") from e
        self._states = states

    def get(self, name: str) -> DatabaseState:
        """Return the state of a module (a default state if unknown)."""
        with self._lock:
            values = self._states.get(name)
            if values is None:
                return DatabaseState()
            return DatabaseState(
                id=int(values.get("id", 0)),
                installed=bool(values.get("installed", False)),
                active=bool(values.get("active", False)),
                active_on_variant=bool(values.get("active_on_variant", False)),
                version=values.get("version"),
            )

    def installed_names(self) -> list[str]:
        with self._lock:
            return sorted(n for n, v in self._states.items() if v.get("installed"))

    def get_id(self, name: str) -> int:
        return self.get(name).id

    def _next_id(self) -> int:
        return max((int(v.get("id", 0)) for v in self._states.values()), default=0) + 1

    def mark_installed(self, name: str, version: str | None, active: bool = True) -> DatabaseState:
        """Record a successful install (keeps an id assigned by an earlier install)."""
        with self._lock:
            states = self._draft()
            values = states.setdefault(name, {})
            if not values.get("id"):
                values["id"] = self._next_id()
            values.update(
                installed=True,
                active=active,
                active_on_variant=active,
                version=version,
            )
            self._commit(states)
        logger.debug("State of %s: installed (version %s)", name, version)
        return self.get(name)

    def mark_uninstalled(self, name: str) -> DatabaseState:
        with self._lock:
            states = self._draft()
            values = states.setdefault(name, {})
            values.update(installed=False, active=False, active_on_variant=False)
            self._commit(states)
        logger.debug("State of %s: uninstalled", name)
        return self.get(name)

    def _set_flag(self, name: str, flag: str, value: bool) -> DatabaseState:
        with self._lock:
            states = self._draft()
            values = states.get(name)
            if values is None or not values.get("installed"):
                raise StateError(f"Module {name} is not installed, cannot change '{flag}'")
            values[flag] = value
            self._commit(states)
        return self.get(name)

    def set_active(self, name: str, active: bool) -> DatabaseState:
        return self._set_flag(name, "active", active)

    def set_active_on_variant(self, name: str, active: bool) -> DatabaseState:
        return self._set_flag(name, "active_on_variant", active)

    def set_version(self, name: str, version: str) -> DatabaseState:
        with self._lock:
            states = self._draft()
            values = states.get(name)
            if values is None or not values.get("installed"):
                raise StateError(f"Module {name} is not installed, cannot set its version")
            values["version"] = version
            self._commit(states)
        return self.get(name)
