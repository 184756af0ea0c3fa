"""
Module Manager.

This module provides the lifecycle orchestrator: install, post-install,
uninstall, upgrade, enable/disable (primary and variant flag) and reset.

Every operation follows the same shape: permission check, installed
check, acquisition when needed, the descriptor's lifecycle hook, a
conditional cache clear, then an event. The boolean hook result is the
return value.

Key features:
- Single upfront permission check per operation
- Acquisition from locations or the marketplace before install/upgrade
- Hook failures wrapped for enable/disable/variant/reset, propagated as-is
  for install/uninstall/upgrade
- At most one cache clear per CacheSession
- Notification aggregation for modules needing configuration or an upgrade
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from modhub.modules.acquisition import is_location
from modhub.modules.descriptor import ModuleCollection
from modhub.modules.events import LifecycleEvent

logger = logging.getLogger(__name__)

# Action preferred as url_active for each notification bucket
NOTIFICATION_ACTIONS = {"to_configure": "configure", "to_update": "upgrade"}

INVALID_MODULE_MESSAGE = "The module is invalid and cannot be loaded."
NO_DETAILS_MESSAGE = "Unfortunately, the module did not return additional details."


class ModuleManagerError(Exception):
    """Base exception for module manager errors."""

    pass


class PermissionDenied(ModuleManagerError):
    """Raised when the actor may not perform an operation."""

    pass


class NotInstalledError(ModuleManagerError):
    """Raised when an operation requires an installed module."""

    def __init__(self, module_name: str):
        super().__init__(f"The module {module_name} must be installed first")
        self.module_name = module_name


class PackageNotFound(ModuleManagerError):
    """Raised when a module is neither on disk nor available on the marketplace."""

    def __init__(self, module_name: str):
        super().__init__(f"The module {module_name} could not be found on the marketplace.")
        self.module_name = module_name


class OperationFailed(ModuleManagerError):
    """
    Raised when a lifecycle hook fails with an exception on a wrapped path.

    The hook exception is available as ``__cause__``.
    """

    def __init__(self, message: str, module_name: str, detail: str):
        super().__init__(message)
        self.module_name = module_name
        self.detail = detail


@dataclass(frozen=True)
class ActionParams:
    """
    Parameters that modify how subsequent operations behave.

    Attributes:
        deletion: Uninstall also removes the module files from disk
        cache_clear_enabled: Successful operations clear the caches
        extra: Free-form values for callers and subscribers
    """

    deletion: bool = False
    cache_clear_enabled: bool = True
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ActionParams":
        known = {k: values[k] for k in ("deletion", "cache_clear_enabled") if k in values}
        extra = {k: v for k, v in values.items() if k not in known}
        return cls(
            deletion=bool(known.get("deletion", False)),
            cache_clear_enabled=bool(known.get("cache_clear_enabled", True)),
            extra=extra,
        )

    def get(self, key: str, default: Any = None) -> Any:
        if key in ("deletion", "cache_clear_enabled"):
            return getattr(self, key)
        return self.extra.get(key, default)


class CacheSession:
    """Tracks whether the caches were already cleared in the current batch."""

    def __init__(self):
        self.cleared = False

    def clear_once(self, invalidator) -> bool:
        """Run the invalidator unless this session already did. Returns True if it ran."""
        if self.cleared:
            return False
        invalidator.clear()
        self.cleared = True
        return True


@dataclass(frozen=True)
class HookOutcome:
    """Result of one lifecycle hook call: the boolean result or the exception it raised."""

    success: bool
    error: Exception | None = None


def _call_hook(hook: Callable[..., bool], *args) -> HookOutcome:
    try:
        return HookOutcome(success=bool(hook(*args)))
    except Exception as e:
        return HookOutcome(success=False, error=e)


class ModuleManager:
    """
    Lifecycle orchestrator.

    Collaborators are duck-typed:

    - repository: get_module, is_installed, is_enabled, is_on_disk,
      get_installed_modules, get_id_by_name
    - acquisition: resolve_name_from_package, materialize_from_location,
      pull_from_marketplace, delete_from_disk, discard_staged (close is optional)
    - upgrade_runner: run_migrations
    - permissions: is_allowed
    - cache_invalidator: clear
    - events: publish
    - builder (optional): generate_action_urls_for
    """

    def __init__(
        self,
        repository,
        acquisition,
        upgrade_runner,
        permissions,
        cache_invalidator,
        events,
        builder=None,
    ):
        self.repository = repository
        self.acquisition = acquisition
        self.upgrade_runner = upgrade_runner
        self.permissions = permissions
        self.cache_invalidator = cache_invalidator
        self.events = events
        self.builder = builder
        self.action_params = ActionParams()
        self.cache_session = CacheSession()

    def close(self) -> None:
        close = getattr(self.acquisition, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "ModuleManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ----------------------------
    # Parameters and batches
    # ----------------------------

    def set_action_params(self, params: ActionParams | Mapping[str, Any] | None = None, **values) -> None:
        """
        Replace the action parameters.

        The previous parameters are discarded entirely, not merged.
        """
        if params is None:
            params = ActionParams.from_mapping(values)
        elif not isinstance(params, ActionParams):
            params = ActionParams.from_mapping({**params, **values})
        elif values:
            params = replace(params, **values)
        self.action_params = params

    def reset_action_params(self) -> None:
        self.action_params = ActionParams()

    def new_batch(self) -> CacheSession:
        """Start a new cache session so the next successful operation clears caches again."""
        self.cache_session = CacheSession()
        return self.cache_session

    # ----------------------------
    # Internal helpers
    # ----------------------------

    def _check_permission(self, action: str, name: str | None, message: str) -> None:
        if not self.permissions.is_allowed(action, name):
            logger.info("Permission denied: %s %s", action, name or "")
            raise PermissionDenied(message)

    def _check_is_installed(self, name: str) -> None:
        if not self.repository.is_installed(name):
            raise NotInstalledError(name)

    def _check_and_clear_cache(self, result: bool) -> None:
        if result and self.action_params.cache_clear_enabled:
            if self.cache_session.clear_once(self.cache_invalidator):
                logger.debug("Caches cleared")

    def _dispatch(self, event: LifecycleEvent, descriptor) -> None:
        self.events.publish(event, descriptor)

    @staticmethod
    def _unwrapped(outcome: HookOutcome) -> bool:
        if outcome.error is not None:
            raise outcome.error
        return outcome.success

    @staticmethod
    def _wrapped(outcome: HookOutcome, message: str, name: str) -> bool:
        if outcome.error is not None:
            detail = str(outcome.error)
            raise OperationFailed(f"{message} {detail}", name, detail) from outcome.error
        return outcome.success

    # ----------------------------
    # Lifecycle operations
    # ----------------------------

    def install(self, source: str) -> bool:
        """
        Install a module.

        Args:
            source: A module name (from disk or the marketplace) or a
                package location (archive path, directory, URL, git+URL)

        Returns:
            The install hook result

        Raises:
            PermissionDenied: If installing is not allowed
            PackageNotFound: If the module is missing and the marketplace pull failed
        """
        self._check_permission("install", None, "You are not allowed to install modules.")

        if is_location(source):
            location = source
            name = self.acquisition.resolve_name_from_package(location)
        else:
            location = None
            name = source

        if self.repository.is_installed(name):
            logger.info("Module %s is already installed, upgrading instead", name)
            try:
                return self.upgrade(name, "latest", location)
            except (PermissionDenied, NotInstalledError):
                if location:
                    self.acquisition.discard_staged()
                raise

        if location:
            self.acquisition.materialize_from_location(location)
        elif not self.repository.is_on_disk(name):
            if not self.acquisition.pull_from_marketplace(name):
                raise PackageNotFound(name)

        module = self.repository.get_module(name)
        result = self._unwrapped(_call_hook(module.on_install))
        logger.info("Install of %s: %s", name, "ok" if result else "failed")

        self._check_and_clear_cache(result)
        self._dispatch(LifecycleEvent.INSTALL, module)
        return result

    def post_install(self, name: str) -> bool:
        """Run follow-up steps of an install. Returns False unless installed and on disk."""
        if not self.repository.is_installed(name):
            return False
        if not self.repository.is_on_disk(name):
            return False

        module = self.repository.get_module(name)
        result = self._unwrapped(_call_hook(module.on_post_install))

        self._check_and_clear_cache(result)
        self._dispatch(LifecycleEvent.POST_INSTALL, module)
        return result

    def uninstall(self, name: str) -> bool:
        """
        Uninstall a module, deleting its files when the ``deletion`` parameter is set.

        A failed deletion makes the result False but the module stays uninstalled.
        """
        self._check_permission(
            "uninstall", name, f"You are not allowed to uninstall the module {name}."
        )
        self._check_is_installed(name)

        module = self.repository.get_module(name)
        result = self._unwrapped(_call_hook(module.on_uninstall))

        if result and self.action_params.deletion:
            result = self.remove_module_from_disk(name)
            if not result:
                logger.warning("Module %s was uninstalled but its files could not be removed", name)
        logger.info("Uninstall of %s: %s", name, "ok" if result else "failed")

        self._check_and_clear_cache(result)
        self._dispatch(LifecycleEvent.UNINSTALL, module)
        return result

    def upgrade(self, name: str, version: str = "latest", source: str | None = None) -> bool:
        """
        Upgrade a module.

        New files come from ``source`` when given, else (best effort) from
        the marketplace when the module's origin allows it. Success needs
        both the migrations and the upgrade hook.
        """
        self._check_permission("upgrade", name, f"You are not allowed to upgrade the module {name}.")
        self._check_is_installed(name)

        module = self.repository.get_module(name)
        if source:
            self.acquisition.materialize_from_location(source)
            module = self.repository.get_module(name)
        elif module.can_be_upgraded_from_marketplace():
            # Optional for local modules; the result is ignored
            if self.acquisition.pull_from_marketplace(name):
                module = self.repository.get_module(name)
        else:
            logger.debug("Module %s is not upgraded from the marketplace", name)

        result = self.upgrade_runner.run_migrations(name) and self._unwrapped(
            _call_hook(module.on_upgrade, version)
        )
        logger.info("Upgrade of %s: %s", name, "ok" if result else "failed")

        self._check_and_clear_cache(result)
        self._dispatch(LifecycleEvent.UPGRADE, module)
        return result

    def _toggle(
        self,
        name: str,
        action: str,
        hook_name: str,
        error_message: str,
        event: LifecycleEvent | None,
    ) -> bool:
        self._check_is_installed(name)

        module = self.repository.get_module(name)
        result = self._wrapped(_call_hook(getattr(module, hook_name)), error_message, name)
        logger.info("%s of %s: %s", action.replace("_", " ").capitalize(), name, "ok" if result else "failed")

        self._check_and_clear_cache(result)
        if event is not None:
            self._dispatch(event, module)
        return result

    def enable(self, name: str) -> bool:
        """
        Enable a module.

        Raises:
            OperationFailed: If the enable hook raised
        """
        self._check_permission("enable", name, f"You are not allowed to enable the module {name}.")
        return self._toggle(
            name, "enable", "on_enable",
            f"Error when enabling module {name}.", LifecycleEvent.ENABLE,
        )

    def disable(self, name: str) -> bool:
        """
        Disable a module without uninstalling it.

        Raises:
            OperationFailed: If the disable hook raised
        """
        self._check_permission("disable", name, f"You are not allowed to disable the module {name}.")
        return self._toggle(
            name, "disable", "on_disable",
            f"Error when disabling module {name}.", LifecycleEvent.DISABLE,
        )

    def enable_on_variant(self, name: str) -> bool:
        """Enable a module on the variant flag. Publishes no event."""
        self._check_permission(
            "enable_variant", name, f"You are not allowed to enable the module {name} on variant."
        )
        return self._toggle(
            name, "enable_variant", "on_variant_enable",
            f"Error when enabling module {name} on variant.", None,
        )

    def disable_on_variant(self, name: str) -> bool:
        """Disable a module on the variant flag. Publishes no event."""
        self._check_permission(
            "disable_variant", name, f"You are not allowed to disable the module {name} on variant."
        )
        return self._toggle(
            name, "disable_variant", "on_variant_disable",
            f"Error when disabling module {name} on variant.", None,
        )

    def reset(self, name: str, keep_data: bool = False) -> bool:
        """
        Restore a module's default settings.

        With ``keep_data`` and a reset-capable implementation the module's
        own reset runs between UNINSTALL and INSTALL events. Otherwise the
        module is uninstalled then installed again; the result is False if
        either step fails, even when the module ends up uninstalled.

        Raises:
            PermissionDenied: Unless both install and uninstall are allowed
            NotInstalledError: If the module is not installed
            OperationFailed: If anything inside the reset raised
        """
        if not self.permissions.is_allowed("install") or not self.permissions.is_allowed(
            "uninstall", name
        ):
            raise PermissionDenied(f"You are not allowed to reset the module {name}.")
        self._check_is_installed(name)

        module = self.repository.get_module(name)
        try:
            if keep_data and module.supports_reset:
                self._dispatch(LifecycleEvent.UNINSTALL, module)
                status = self._unwrapped(_call_hook(module.on_reset))
                self._dispatch(LifecycleEvent.INSTALL, module)
            else:
                status = self.uninstall(name) and self.install(name)
        except Exception as e:
            raise OperationFailed(
                f"Error when resetting module {name}. {e}", name, str(e)
            ) from e

        logger.info("Reset of %s: %s", name, "ok" if status else "failed")
        return status

    # ----------------------------
    # Shortcuts
    # ----------------------------

    def is_enabled(self, name: str) -> bool:
        return self.repository.is_enabled(name)

    def is_installed(self, name: str) -> bool:
        return self.repository.is_installed(name)

    def get_module_id_by_name(self, name: str) -> int:
        """Return the module id, or 0 if not found."""
        return self.repository.get_id_by_name(name)

    def remove_module_from_disk(self, name: str) -> bool:
        return self.acquisition.delete_from_disk(name)

    # ----------------------------
    # Errors and notifications
    # ----------------------------

    def get_error(self, name: str) -> str:
        """
        Return the last error recorded by a module.

        Never raises: an unloadable module yields a generic message.
        """
        try:
            module = self.repository.get_module(name)
            if not module.has_valid_instance():
                return INVALID_MODULE_MESSAGE
            errors = module.get_instance().get_errors()
        except Exception as e:
            logger.debug("Cannot read errors of module %s: %s", name, e)
            return INVALID_MODULE_MESSAGE

        message = errors[-1] if errors else None
        return message or NO_DETAILS_MESSAGE

    get_last_error = get_error

    def _group_modules_by_notification(self) -> dict[str, list]:
        groups: dict[str, list] = {"to_configure": [], "to_update": []}
        for module in self.repository.get_installed_modules():
            if self._should_recommend_configuration(module):
                groups["to_configure"].append(module)
            if module.can_be_upgraded():
                groups["to_update"].append(module)
        return groups

    @staticmethod
    def _should_recommend_configuration(module) -> bool:
        if not module.has_valid_instance():
            return False
        return bool(module.get_instance().warning)

    def get_modules_with_notifications(self, presenter: Callable[[ModuleCollection], Any]) -> dict[str, Any]:
        """
        Installed modules needing attention, per bucket, passed through ``presenter``.

        Returns:
            {"to_configure": presenter(collection), "to_update": presenter(collection)}
        """
        result = {}
        for label, modules in self._group_modules_by_notification().items():
            collection = ModuleCollection.create_from(modules)
            if self.builder is not None:
                self.builder.generate_action_urls_for(collection, NOTIFICATION_ACTIONS[label])
            result[label] = presenter(collection)
        return result

    def count_modules_with_notifications_detailed(self) -> dict[str, int]:
        """Return {"count": total, "to_configure": n, "to_update": m}."""
        counts = {"count": 0}
        for label, modules in self._group_modules_by_notification().items():
            counts[label] = len(modules)
            counts["count"] += len(modules)
        return counts
