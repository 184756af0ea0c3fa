"""
mpm enable/disable commands (-E, -D).

--variant toggles the variant flag instead of the primary one.
"""

from typing import Any

from modhub.modules.manager import ModuleManager
from mpm.cli import run_targets


def toggle_command(manager: ModuleManager, args: Any) -> int:
    """Execute enable or disable command."""
    if args.enable:
        operation = manager.enable_on_variant if args.variant else manager.enable
        verb = "enable"
    else:
        operation = manager.disable_on_variant if args.variant else manager.disable
        verb = "disable"

    if args.variant:
        verb += " (variant)"
    return run_targets(manager, args.targets, operation, verb, args.verbose)
