"""
mpm reset command (-X).
"""

from typing import Any

from modhub.modules.manager import ModuleManager
from mpm.cli import run_targets


def reset_command(manager: ModuleManager, args: Any) -> int:
    """Execute reset command; --keep-data asks for a lightweight reset."""

    def reset(name: str) -> bool:
        return manager.reset(name, keep_data=args.keep_data)

    return run_targets(manager, args.targets, reset, "reset", args.verbose)
