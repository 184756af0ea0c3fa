"""
mpm install command (-S).

Install modules by name (from disk or the marketplace) or from a package
location: a zip archive, a directory, an archive URL or git+<repo>[@tag].
"""

from typing import Any

from modhub.modules.manager import ModuleManager
from mpm.cli import run_targets


def install_command(manager: ModuleManager, args: Any) -> int:
    """
    Execute install command.

    Args:
        manager: Module manager
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    return run_targets(manager, args.targets, manager.install, "install", args.verbose)
