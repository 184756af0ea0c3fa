"""
Module Descriptor Builder.

This module turns a module directory plus its stored state into a
:class:`ModuleDescriptor`.

Key features:
- Disk facts (presence, mtime, validity, version) from the entry point
- Implementation attributes merged over manifest attributes
- Capabilities computed once per build
- Action URL generation with the active action selection
"""

import logging
from pathlib import Path
from typing import Any

from modhub.modules.base import BaseModule, PaymentModule
from modhub.modules.descriptor import Capabilities, DiskState, ModuleCollection, ModuleDescriptor
from modhub.modules.hooks import DEFAULT_HOOK_TIMEOUT
from modhub.modules.loader import LoaderError, ModuleSyntaxError, load_module_instance
from modhub.modules.manifest import (
    MANIFEST_FILENAME,
    Manifest,
    ManifestError,
    compare_versions,
    is_valid_module_name,
    parse_manifest,
)
from modhub.modules.origin import Origin
from modhub.modules.state_store import DatabaseState, StateStore

logger = logging.getLogger(__name__)

DEFAULT_ACTION_URL = "/modules/{action}/{name}"
DEFAULT_CONFIGURE_URL = "/modules/configure/{name}"

# Implementation attributes copied over the manifest ones
MAIN_CLASS_ATTRIBUTES = (
    "warning",
    "name",
    "tab",
    "display_name",
    "description",
    "author",
    "limited_countries",
    "need_instance",
    "confirm_uninstall",
)

AVAILABLE_ACTIONS = (
    "install",
    "uninstall",
    "enable",
    "disable",
    "enable_variant",
    "disable_variant",
    "reset",
    "upgrade",
)

# Marketplace tiers that can still be installed without buying
_INSTALLABLE_ORIGINS = Origin.DISK | Origin.ADDONS_NATIVE | Origin.ADDONS_NATIVE_ALL | Origin.ADDONS_CUSTOMER


class ModuleBuilder:
    """
    Builds descriptors for modules living under ``modules_dir``.

    Args:
        modules_dir: Directory holding one folder per module
        state_store: Store providing (and receiving) the persisted state
        action_url: Template for action URLs, with {action} and {name}
        configure_url: Template for the configure URL, with {name}
        hook_timeout: Timeout handed to loaded implementations
    """

    def __init__(
        self,
        modules_dir: Path,
        state_store: StateStore,
        action_url: str = DEFAULT_ACTION_URL,
        configure_url: str = DEFAULT_CONFIGURE_URL,
        hook_timeout: int = DEFAULT_HOOK_TIMEOUT,
    ):
        self.modules_dir = modules_dir
        self.state_store = state_store
        self.action_url = action_url
        self.configure_url = configure_url
        self.hook_timeout = hook_timeout

    def module_path(self, name: str) -> Path:
        return self.modules_dir / name

    def build(self, name: str, database: DatabaseState | None = None) -> ModuleDescriptor:
        """
        Build the descriptor of one module.

        Invalid module code never raises here: it yields a descriptor whose
        disk state is not valid, and the failure is logged.
        """
        if database is None:
            database = self.state_store.get(name)

        path = self.module_path(name)
        attributes: dict[str, Any] = {"name": name}
        manifest = self._read_manifest(name)
        origin = Origin.DISK

        is_present = False
        filemtime = 0
        if manifest is not None:
            origin = manifest.origin
            attributes.update(
                display_name=manifest.display_name,
                description=manifest.description,
                author=manifest.author,
                tab=manifest.tab,
                need_instance=manifest.need_instance,
                confirm_uninstall=manifest.confirm_uninstall,
                limited_countries=list(manifest.limited_countries),
                main=manifest.main,
                origin=origin,
            )
            entry_point = path / manifest.main
            if entry_point.is_file():
                is_present = True
                filemtime = int(entry_point.stat().st_mtime)

        instance = None
        if is_present:
            instance = self._load_instance(name, path, manifest)

        version = None
        capabilities = Capabilities()
        if instance is not None:
            for attr in MAIN_CLASS_ATTRIBUTES:
                value = getattr(instance, attr, None)
                if value is not None:
                    attributes[attr] = value

            parents = type(instance).__mro__
            attributes["parent_class"] = parents[1].__name__ if len(parents) > 1 else None
            version = instance.version
            capabilities = Capabilities(
                is_configurable=callable(getattr(instance, "get_content", None)),
                is_payment_type=isinstance(instance, PaymentModule),
                can_be_upgraded=_is_upgradable(database, version),
                supports_reset=callable(getattr(instance, "reset", None)),
            )
            attributes["is_configurable"] = capabilities.is_configurable
            attributes["is_payment_type"] = capabilities.is_payment_type

        disk = DiskState(
            is_present=is_present,
            filemtime=filemtime,
            is_valid=instance is not None,
            version=version,
            path=path,
        )
        descriptor = ModuleDescriptor(
            name=name,
            disk=disk,
            database=database,
            origin=origin,
            attributes=attributes,
            instance=instance,
            capabilities=capabilities,
            state_store=self.state_store,
        )
        self.generate_action_urls(descriptor)
        return descriptor

    def _read_manifest(self, name: str) -> Manifest | None:
        manifest_path = self.module_path(name) / MANIFEST_FILENAME
        if not manifest_path.is_file():
            return None
        try:
            manifest = parse_manifest(manifest_path)
        except ManifestError as e:
            logger.error("Invalid manifest for module %s: %s", name, e)
            return None
        if manifest.name != name:
            logger.error(
                "Module directory %s declares a different name: %s", name, manifest.name
            )
            return None
        return manifest

    def _load_instance(self, name: str, path: Path, manifest: Manifest) -> BaseModule | None:
        if not is_valid_module_name(name):
            return None
        try:
            return load_module_instance(path, manifest, hook_timeout=self.hook_timeout)
        except ModuleSyntaxError as e:
            logger.critical("Parse error detected in main class of module %s: %s", name, e)
        except LoaderError as e:
            logger.error("Error while loading file of module %s. %s", name, e)
        return None

    # ----------------------------
    # Action URLs
    # ----------------------------

    def generate_action_urls(self, descriptor: ModuleDescriptor) -> None:
        """
        Attach ``urls`` and ``url_active`` to the descriptor attributes.

        Actions that make no sense in the current state are pruned. The
        active action is the most useful next step: enable for a disabled
        module, configure for a configurable one, upgrade whenever an
        upgrade is pending, install for an installable one, and ``buy``
        for a module only the marketplace can provide.
        """
        name = descriptor.name
        urls = {
            action: self.action_url.format(action=action, name=name)
            for action in AVAILABLE_ACTIONS
        }
        urls["configure"] = self.configure_url.format(name=name)

        database = descriptor.database
        is_configurable = descriptor.capabilities.is_configurable

        if database.installed:
            if not database.active:
                url_active = "enable"
                _prune(urls, "install", "disable")
            elif is_configurable:
                url_active = "configure"
                _prune(urls, "enable", "install")
            else:
                url_active = "disable"
                _prune(urls, "install", "enable", "configure")

            if not is_configurable:
                _prune(urls, "configure")

            if descriptor.can_be_upgraded():
                url_active = "upgrade"
            else:
                _prune(urls, "upgrade")

            if database.active_on_variant:
                _prune(urls, "enable_variant")
            else:
                _prune(urls, "disable_variant")
        elif descriptor.disk.is_present or descriptor.origin & _INSTALLABLE_ORIGINS:
            url_active = "install"
            _prune(
                urls,
                "uninstall",
                "enable",
                "disable",
                "enable_variant",
                "disable_variant",
                "reset",
                "upgrade",
                "configure",
            )
        else:
            url_active = "buy"

        descriptor.attributes["urls"] = urls
        if url_active == "buy" or url_active in urls:
            descriptor.attributes["url_active"] = url_active
        else:
            descriptor.attributes["url_active"] = next(iter(urls), None)

    def generate_action_urls_for(
        self, collection: ModuleCollection, preferred_action: str | None = None
    ) -> ModuleCollection:
        """Generate URLs for a whole collection, preferring one action when available."""
        for descriptor in collection:
            self.generate_action_urls(descriptor)
            if preferred_action and preferred_action in descriptor.attributes["urls"]:
                descriptor.attributes["url_active"] = preferred_action
        return collection


def _prune(urls: dict[str, str], *actions: str) -> None:
    for action in actions:
        urls.pop(action, None)


def _is_upgradable(database: DatabaseState, disk_version: str | None) -> bool:
    if not database.installed or not disk_version or not database.version:
        return False
    try:
        return compare_versions(disk_version, database.version) > 0
    except ValueError:
        logger.warning(
            "Cannot compare versions %s and %s", disk_version, database.version
        )
        return False
