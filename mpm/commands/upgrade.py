"""
mpm upgrade command (-U).

Upgrade installed modules. Without targets every module with a pending
upgrade is upgraded.
"""

import sys
from typing import Any

from modhub.modules.manager import ModuleManager
from mpm.cli import run_targets


def upgrade_command(manager: ModuleManager, args: Any) -> int:
    """Execute upgrade command."""
    targets = list(args.targets)
    if args.source and len(targets) != 1:
        print("Error: --source needs exactly one target", file=sys.stderr)
        return 1

    if not targets:
        targets = [m.name for m in manager.repository.get_installed_modules() if m.can_be_upgraded()]
        if not targets:
            print("Nothing to upgrade")
            return 0

    def upgrade(name: str) -> bool:
        return manager.upgrade(name, args.target_version, args.source)

    return run_targets(manager, targets, upgrade, "upgrade", args.verbose)
