"""
Base classes for module implementations.

A module's ``main`` file defines one subclass of :class:`BaseModule`. The
default lifecycle methods run the matching script from the module's
``hooks/`` directory, so a module without Python-side logic only needs
scripts. Override a method to take over that transition.

``reset`` is deliberately absent from BaseModule: defining it opts a module
into lightweight resets that keep its data.
"""

import logging
from pathlib import Path

from modhub.modules.hooks import DEFAULT_HOOK_TIMEOUT, HookError, HookType, execute_hook
from modhub.modules.manifest import Manifest

logger = logging.getLogger(__name__)


class BaseModule:
    """
    Base class every module implementation derives from.

    Class attributes left as None are filled in from the manifest.
    """

    name: str | None = None
    version: str | None = None
    display_name: str | None = None
    description: str | None = None
    author: str | None = None
    tab: str | None = None
    need_instance: bool | None = None
    confirm_uninstall: str | None = None
    limited_countries: list[str] | None = None

    # Non-empty when the merchant still has to configure something
    warning: str | list[str] = ""

    def __init__(
        self,
        module_dir: Path | None = None,
        manifest: Manifest | None = None,
        hook_timeout: int = DEFAULT_HOOK_TIMEOUT,
    ):
        self.module_dir = module_dir
        self.hook_timeout = hook_timeout
        self._errors: list[str] = []

        if manifest is not None:
            for attr in (
                "name",
                "version",
                "display_name",
                "description",
                "author",
                "tab",
                "need_instance",
                "confirm_uninstall",
                "limited_countries",
            ):
                if getattr(self, attr) is None:
                    setattr(self, attr, getattr(manifest, attr))

    def add_error(self, message: str) -> None:
        self._errors.append(message)

    def get_errors(self) -> list[str]:
        """Errors recorded so far, oldest first."""
        return list(self._errors)

    def _run_hook(self, hook_type: HookType, env_vars: dict[str, str] | None = None) -> bool:
        if self.module_dir is None:
            return True
        try:
            execute_hook(self.module_dir, hook_type, env_vars=env_vars, timeout=self.hook_timeout)
        except HookError as e:
            logger.warning("Module %s: %s", self.name, e)
            self.add_error(str(e))
            return False
        return True

    def install(self) -> bool:
        return self._run_hook(HookType.INSTALL)

    def post_install(self) -> bool:
        return self._run_hook(HookType.POST_INSTALL)

    def uninstall(self) -> bool:
        return self._run_hook(HookType.UNINSTALL)

    def upgrade(self, version: str) -> bool:
        return self._run_hook(HookType.UPGRADE, {"MODHUB_TARGET_VERSION": version})

    def enable(self) -> bool:
        return self._run_hook(HookType.ENABLE)

    def disable(self) -> bool:
        return self._run_hook(HookType.DISABLE)

    def enable_variant(self) -> bool:
        return self._run_hook(HookType.ENABLE_VARIANT)

    def disable_variant(self) -> bool:
        return self._run_hook(HookType.DISABLE_VARIANT)


class PaymentModule(BaseModule):
    """Marker base class for payment modules."""

    pass
