"""
Module Repository.

This module is the registry the orchestrator queries: it lists modules on
disk, answers state questions from the state store and hands out
descriptors built by :class:`ModuleBuilder`.

Key features:
- Descriptor cache keyed by manifest/entry point signatures and stored state
- Installed module listing
- Thread-safe cache access
"""

import logging
import threading
from pathlib import Path

from modhub.modules.builder import ModuleBuilder
from modhub.modules.descriptor import ModuleDescriptor
from modhub.modules.loader import file_signature
from modhub.modules.manifest import MANIFEST_FILENAME, is_valid_module_name
from modhub.modules.state_store import DatabaseState, StateStore

logger = logging.getLogger(__name__)

_CacheKey = tuple[tuple[int, int, int] | None, tuple[int, int, int] | None, DatabaseState]


def _signature_or_none(path: Path) -> tuple[int, int, int] | None:
    try:
        return file_signature(path)
    except OSError:
        return None


class ModuleRepository:
    """
    Registry of modules.

    Descriptors are rebuilt when their manifest, entry point or stored
    state changes, so a module replaced on disk is picked up without an
    explicit cache clear.
    """

    def __init__(self, builder: ModuleBuilder, state_store: StateStore):
        self.builder = builder
        self.state_store = state_store
        self._cache: dict[str, tuple[_CacheKey, ModuleDescriptor]] = {}
        self._lock = threading.Lock()

    @property
    def modules_dir(self) -> Path:
        return self.builder.modules_dir

    def _cache_key(self, name: str, main: str | None) -> _CacheKey:
        module_dir = self.modules_dir / name
        entry = _signature_or_none(module_dir / main) if main else None
        return (
            _signature_or_none(module_dir / MANIFEST_FILENAME),
            entry,
            self.state_store.get(name),
        )

    def get_module(self, name: str) -> ModuleDescriptor:
        """Return the descriptor of a module (built on first access or after a change)."""
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                key, descriptor = cached
                if key == self._cache_key(name, descriptor.attributes.get("main")):
                    return descriptor

        descriptor = self.builder.build(name, self.state_store.get(name))
        key = self._cache_key(name, descriptor.attributes.get("main"))
        with self._lock:
            self._cache[name] = (key, descriptor)
        return descriptor

    def is_installed(self, name: str) -> bool:
        return self.state_store.get(name).installed

    def is_enabled(self, name: str) -> bool:
        state = self.state_store.get(name)
        return state.installed and state.active

    def is_on_disk(self, name: str) -> bool:
        if not is_valid_module_name(name):
            return False
        return (self.modules_dir / name / MANIFEST_FILENAME).is_file()

    def get_id_by_name(self, name: str) -> int:
        return self.state_store.get_id(name)

    def get_installed_modules(self) -> list[ModuleDescriptor]:
        return [self.get_module(name) for name in self.state_store.installed_names()]

    def list_on_disk(self) -> list[str]:
        """Names of every module directory holding a manifest."""
        if not self.modules_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.modules_dir.iterdir()
            if entry.is_dir() and self.is_on_disk(entry.name)
        )

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.debug("Module repository cache cleared")
