"""
mpm query command (-Q).

-Q lists installed modules, -Qi shows one module in detail and -Qn
counts modules needing configuration or an upgrade.
"""

import sys
from typing import Any

from modhub.modules.descriptor import ModuleDescriptor
from modhub.modules.manager import ModuleManager


def query_command(manager: ModuleManager, args: Any) -> int:
    """Execute query command."""
    if args.notifications:
        return show_notification_counts(manager)

    if args.info:
        if not args.targets:
            print("Error: No targets specified", file=sys.stderr)
            print("Usage: mpm -Qi <name>", file=sys.stderr)
            return 1
        return show_info(manager, args.targets)

    return list_installed(manager)


def _flags(module: ModuleDescriptor) -> str:
    flags = []
    if module.database.active:
        flags.append("active")
    if module.database.active_on_variant:
        flags.append("variant")
    if module.can_be_upgraded():
        flags.append(f"upgrade to {module.disk.version}")
    if not module.has_valid_instance():
        flags.append("invalid")
    return ", ".join(flags)


def list_installed(manager: ModuleManager) -> int:
    modules = manager.repository.get_installed_modules()
    if not modules:
        print("No modules installed")
        return 0

    for module in modules:
        print(f"{module.name} {module.database.version or '?'} [{_flags(module)}]")
    return 0


def show_info(manager: ModuleManager, targets: list[str]) -> int:
    exit_code = 0
    for name in targets:
        module = manager.repository.get_module(name)
        if not module.disk.is_present and not module.database.installed:
            print(f"Error: module {name} not found", file=sys.stderr)
            exit_code = 1
            continue

        attributes = module.attributes
        rows = [
            ("Name", module.name),
            ("Display Name", attributes.get("display_name", "")),
            ("Description", attributes.get("description", "")),
            ("Author", attributes.get("author", "")),
            ("Installed", "yes" if module.database.installed else "no"),
            ("Installed Version", module.database.version or "-"),
            ("Disk Version", module.disk.version or "-"),
            ("Status", _flags(module) or "-"),
            ("Origin", module.origin.name or str(int(module.origin))),
            ("Path", str(module.disk.path)),
            ("Next Action", attributes.get("url_active") or "-"),
        ]
        if module.database.installed:
            rows.insert(1, ("Id", str(module.database.id)))
        for label, value in rows:
            print(f"{label:<18}: {value}")
        print()
    return exit_code


def show_notification_counts(manager: ModuleManager) -> int:
    counts = manager.count_modules_with_notifications_detailed()
    print(f"To configure: {counts['to_configure']}")
    print(f"To update:    {counts['to_update']}")
    print(f"Total:        {counts['count']}")
    return 0
