"""
mpm remove command (-R).

Uninstall modules; --purge also deletes their files.
"""

from typing import Any

from modhub.modules.manager import ModuleManager
from mpm.cli import run_targets


def remove_command(manager: ModuleManager, args: Any) -> int:
    """Execute remove command."""
    if args.purge:
        manager.set_action_params(
            deletion=True, cache_clear_enabled=manager.action_params.cache_clear_enabled
        )
    return run_targets(manager, args.targets, manager.uninstall, "remove", args.verbose)
