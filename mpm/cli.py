"""
mpm CLI - modhub Module Manager.

Pacman-style interface for managing modhub modules.

Usage:
    mpm -S <name|path|url>...        Install module(s)
    mpm -R <name>... [--purge]       Remove module(s)
    mpm -U <name>...                 Upgrade module(s)
    mpm -Q                           List installed modules
    mpm -Qi <name>                   Show module info
    mpm -Qn                          Count modules needing attention
    mpm -E <name>... [--variant]     Enable module(s)
    mpm -D <name>... [--variant]     Disable module(s)
    mpm -X <name>... [--keep-data]   Reset module(s)
    mpm --init-config                Write a default config file
"""

import argparse
import logging
import sys
from collections.abc import Callable

import modhub.config
from modhub.logging_config import setup_logging
from modhub.modules.factory import create_manager
from modhub.modules.manager import ModuleManager

logger = logging.getLogger(__name__)


class MPMError(Exception):
    """Base exception for mpm errors."""

    pass


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with pacman-style flags."""
    parser = argparse.ArgumentParser(
        prog="mpm",
        description="modhub Module Manager - Pacman-style module manager",
        add_help=False,
    )

    # Operation flags (mutually exclusive)
    ops = parser.add_mutually_exclusive_group()
    ops.add_argument("-S", "--sync", action="store_true", help="Install module")
    ops.add_argument("-R", "--remove", action="store_true", help="Remove module")
    ops.add_argument("-U", "--upgrade", action="store_true", help="Upgrade module(s)")
    ops.add_argument("-Q", "--query", action="store_true", help="Query installed")
    ops.add_argument("-E", "--enable", action="store_true", help="Enable module")
    ops.add_argument("-D", "--disable", action="store_true", help="Disable module")
    ops.add_argument("-X", "--reset", action="store_true", help="Reset module")
    ops.add_argument("--init-config", action="store_true", help="Write default config")
    ops.add_argument("-h", "--help", action="store_true", help="Show help")

    # Query sub-flags
    parser.add_argument("-i", "--info", action="store_true", help="Show info (-Qi)")
    parser.add_argument(
        "-n", "--notifications", action="store_true", help="Notification counts (-Qn)"
    )

    # Operation options
    parser.add_argument("--purge", action="store_true", help="Delete files on -R")
    parser.add_argument("--source", help="Package location for -U")
    parser.add_argument("--version", dest="target_version", default="latest", help="Version for -U")
    parser.add_argument("--variant", action="store_true", help="Toggle the variant flag on -E/-D")
    parser.add_argument("--keep-data", action="store_true", help="Lightweight reset on -X")

    # Common options
    parser.add_argument("--config", help="Settings file (default: $MODHUB_CONFIG or config/modhub.toml)")
    parser.add_argument(
        "--no-cache-clear", action="store_true", help="Do not clear caches after changes"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    # Positional arguments
    parser.add_argument("targets", nargs="*", help="Module names or package locations")

    return parser


def print_help():
    """Print help message."""
    help_text = """
mpm - modhub Module Manager

Usage:
    mpm -S <name|path|url>...        Install module(s)
    mpm -R <name>... [--purge]       Remove module(s)
    mpm -U <name>...                 Upgrade module(s)
    mpm -Q                           List installed modules
    mpm -Qi <name>                   Show module info
    mpm -Qn                          Count modules needing attention
    mpm -E <name>... [--variant]     Enable module(s)
    mpm -D <name>... [--variant]     Disable module(s)
    mpm -X <name>... [--keep-data]   Reset module(s)
    mpm --init-config                Write a default config file

Options:
    --purge                      Delete module files on -R
    --source LOCATION            Upgrade from a package location
    --version VERSION            Target version on -U (default: latest)
    --variant                    Toggle the variant flag on -E/-D
    --keep-data                  Keep module data on -X
    --config PATH                Settings file
    --no-cache-clear             Do not clear caches after changes
    -v, --verbose                Verbose output
    -h, --help                   Show this help
"""
    print(help_text.strip())


def load_manager(args: argparse.Namespace) -> ModuleManager:
    """
    Load settings, configure logging and build the manager for a command.

    Raises:
        MPMError: If the settings cannot be loaded
    """
    try:
        settings = modhub.config.load(args.config)
    except modhub.config.ConfigError as e:
        raise MPMError(str(e)) from e

    level = "DEBUG" if args.verbose else settings.logging.level
    log_file = settings.resolve_path(settings.logging.file) if settings.logging.file else None
    setup_logging(level, log_file)

    manager = create_manager(settings)
    if args.no_cache_clear:
        manager.set_action_params(cache_clear_enabled=False)
    return manager


def run_targets(
    manager: ModuleManager,
    targets: list[str],
    operation: Callable[[str], bool],
    verb: str,
    verbose: bool = False,
) -> int:
    """
    Run an operation on every target, reporting each failure.

    Returns:
        0 if every target succeeded, 1 otherwise
    """
    if not targets:
        print("Error: No targets specified", file=sys.stderr)
        return 1

    success_count = 0
    fail_count = 0

    for target in targets:
        try:
            ok = operation(target)
        except Exception as e:
            print(f"Failed to {verb} {target}: {e}", file=sys.stderr)
            logger.debug("Failed to %s %s", verb, target, exc_info=True)
            fail_count += 1
            continue

        if ok:
            print(f"{target}: {verb} done")
            success_count += 1
        else:
            print(f"Failed to {verb} {target}: {manager.get_error(target)}", file=sys.stderr)
            fail_count += 1

    # Summary
    if verbose:
        print(f"\nSucceeded: {success_count}, Failed: {fail_count}")

    return 0 if fail_count == 0 else 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point for mpm CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.init_config:
            from mpm.commands.init_config import init_config_command

            return init_config_command(args)

        # Show help
        if args.help or not any(
            (args.sync, args.remove, args.upgrade, args.query, args.enable, args.disable, args.reset)
        ):
            print_help()
            return 0

        with load_manager(args) as manager:
            return run_command(manager, args)

    except MPMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1


def run_command(manager: ModuleManager, args: argparse.Namespace) -> int:
    """Route parsed arguments to the matching command."""
    if args.sync:
        # -S: Install
        from mpm.commands.install import install_command

        return install_command(manager, args)

    elif args.remove:
        # -R: Remove
        from mpm.commands.remove import remove_command

        return remove_command(manager, args)

    elif args.upgrade:
        # -U: Upgrade
        from mpm.commands.upgrade import upgrade_command

        return upgrade_command(manager, args)

    elif args.query:
        # -Q: Query
        from mpm.commands.query import query_command

        return query_command(manager, args)

    elif args.enable or args.disable:
        # -E / -D: Enable / disable
        from mpm.commands.toggle import toggle_command

        return toggle_command(manager, args)

    # -X: Reset
    from mpm.commands.reset import reset_command

    return reset_command(manager, args)


if __name__ == "__main__":
    sys.exit(main())
