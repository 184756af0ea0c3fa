"""
Module Descriptor.

This module defines the in-memory view of one module: what is on disk,
what the state store says, where it may come from, and what its
implementation can do.

Key features:
- DiskState / DatabaseState / Capabilities value objects
- Lifecycle hooks that call the implementation and persist the result
- LifecycleHooks protocol naming the contract the orchestrator relies on
- ModuleCollection, the typed list handed to presenters
"""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from modhub.modules.base import BaseModule
from modhub.modules.origin import Origin
from modhub.modules.state_store import DatabaseState, StateStore

logger = logging.getLogger(__name__)


@runtime_checkable
class LifecycleHooks(Protocol):
    """Hooks the orchestrator invokes; each returns True on success."""

    name: str

    def on_install(self) -> bool: ...

    def on_post_install(self) -> bool: ...

    def on_uninstall(self) -> bool: ...

    def on_upgrade(self, version: str) -> bool: ...

    def on_enable(self) -> bool: ...

    def on_disable(self) -> bool: ...

    def on_variant_enable(self) -> bool: ...

    def on_variant_disable(self) -> bool: ...

    def on_reset(self) -> bool: ...

    @property
    def supports_reset(self) -> bool: ...


@dataclass(frozen=True)
class DiskState:
    """
    What the module directory looks like.

    Attributes:
        is_present: The entry point exists
        filemtime: Entry point modification time (0 when absent)
        is_valid: The implementation loaded without errors
        version: Version of the loaded implementation
        path: Module directory
    """

    is_present: bool
    filemtime: int
    is_valid: bool
    version: str | None
    path: Path


@dataclass(frozen=True)
class Capabilities:
    """Flags derived once from the implementation when the descriptor is built."""

    is_configurable: bool = False
    is_payment_type: bool = False
    can_be_upgraded: bool = False
    supports_reset: bool = False


class ModuleDescriptor:
    """
    One module as seen by the orchestrator.

    Hooks delegate to the implementation instance and, on success, write
    the new state through the state store so the descriptor and the store
    stay in agreement.
    """

    def __init__(
        self,
        name: str,
        disk: DiskState,
        database: DatabaseState,
        origin: Origin = Origin.DISK,
        attributes: dict[str, Any] | None = None,
        instance: BaseModule | None = None,
        capabilities: Capabilities | None = None,
        state_store: StateStore | None = None,
    ):
        self.name = name
        self.disk = disk
        self.database = database
        self.origin = origin
        self.attributes = attributes or {}
        self.instance = instance
        self.capabilities = capabilities or Capabilities()
        self._state_store = state_store

    def __repr__(self) -> str:
        return (
            f"ModuleDescriptor({self.name!r}, installed={self.database.installed}, "
            f"active={self.database.active}, version={self.database.version!r})"
        )

    # ----------------------------
    # Facts
    # ----------------------------

    def has_valid_instance(self) -> bool:
        return self.instance is not None and self.disk.is_valid

    def get_instance(self) -> BaseModule | None:
        return self.instance

    def can_be_upgraded(self) -> bool:
        return self.capabilities.can_be_upgraded

    def can_be_upgraded_from_marketplace(self) -> bool:
        return self.origin.allows_marketplace()

    @property
    def supports_reset(self) -> bool:
        return self.capabilities.supports_reset

    @property
    def warning(self) -> str | list[str]:
        if not self.has_valid_instance():
            return ""
        return self.instance.warning

    # ----------------------------
    # Lifecycle hooks
    # ----------------------------

    def _store(self) -> StateStore:
        if self._state_store is None:
            raise RuntimeError(f"Descriptor {self.name} is not bound to a state store")
        return self._state_store

    def on_install(self) -> bool:
        if not self.has_valid_instance():
            return False

        result = bool(self.instance.install())
        if result:
            self.database = self._store().mark_installed(self.name, self.disk.version)
        return result

    def on_post_install(self) -> bool:
        if not self.has_valid_instance():
            return False
        return bool(self.instance.post_install())

    def on_uninstall(self) -> bool:
        if not self.has_valid_instance():
            return False

        result = bool(self.instance.uninstall())
        if result:
            self.database = self._store().mark_uninstalled(self.name)
        return result

    def on_upgrade(self, version: str) -> bool:
        if not self.has_valid_instance():
            return False

        target = self.disk.version if version in (None, "", "latest") else version
        result = bool(self.instance.upgrade(target))
        if result and target:
            self.database = self._store().set_version(self.name, target)
        return result

    def on_enable(self) -> bool:
        if not self.has_valid_instance():
            return False

        result = bool(self.instance.enable())
        if result:
            self.database = self._store().set_active(self.name, True)
        return result

    def on_disable(self) -> bool:
        if not self.has_valid_instance():
            return False

        result = bool(self.instance.disable())
        if result:
            self.database = self._store().set_active(self.name, False)
        return result

    def on_variant_enable(self) -> bool:
        if not self.has_valid_instance():
            return False

        result = bool(self.instance.enable_variant())
        if result:
            self.database = self._store().set_active_on_variant(self.name, True)
        return result

    def on_variant_disable(self) -> bool:
        if not self.has_valid_instance():
            return False

        result = bool(self.instance.disable_variant())
        if result:
            self.database = self._store().set_active_on_variant(self.name, False)
        return result

    def on_reset(self) -> bool:
        if not self.has_valid_instance() or not self.supports_reset:
            return False
        return bool(self.instance.reset())


class ModuleCollection:
    """Ordered collection of descriptors handed to presenters."""

    def __init__(self, modules: Iterable[ModuleDescriptor] = ()):
        self._modules = list(modules)

    @classmethod
    def create_from(cls, modules: Iterable[ModuleDescriptor]) -> "ModuleCollection":
        return cls(modules)

    def __iter__(self) -> Iterator[ModuleDescriptor]:
        return iter(self._modules)

    def __len__(self) -> int:
        return len(self._modules)

    def __getitem__(self, index: int) -> ModuleDescriptor:
        return self._modules[index]

    def names(self) -> list[str]:
        return [m.name for m in self._modules]
