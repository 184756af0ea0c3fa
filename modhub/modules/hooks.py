"""
Module Hook Scripts.

This module runs the optional lifecycle scripts a module ships in its
``hooks/`` directory.

Key features:
- Hook discovery in hooks/ directory
- Environment variable injection
- Subprocess execution with timeout
- Exit code handling
"""

import logging
import os
import stat
import subprocess
import sys
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_HOOK_TIMEOUT = 60


class HookError(Exception):
    """Raised when a hook script fails, times out or cannot be started."""

    pass


class HookType(Enum):
    """Hook script names, one per lifecycle transition."""

    INSTALL = "install"
    POST_INSTALL = "post_install"
    UNINSTALL = "uninstall"
    UPGRADE = "upgrade"
    ENABLE = "enable"
    DISABLE = "disable"
    ENABLE_VARIANT = "enable_variant"
    DISABLE_VARIANT = "disable_variant"
    RESET = "reset"


def execute_hook(
    module_dir: Path,
    hook_type: HookType,
    env_vars: dict[str, str] | None = None,
    timeout: int = DEFAULT_HOOK_TIMEOUT,
) -> bool:
    """
    Execute a lifecycle hook script for a module.

    Args:
        module_dir: Module directory path
        hook_type: Type of hook to execute
        env_vars: Additional environment variables to inject
        timeout: Timeout in seconds

    Returns:
        True if a script ran, False if the module ships none

    Raises:
        HookError: If the script exits non-zero, times out or cannot start
    """
    hook_path = _find_hook(module_dir, hook_type)
    if hook_path is None:
        return False

    env = os.environ.copy()
    if env_vars:
        env.update(env_vars)
    env["MODHUB_MODULE_DIR"] = str(module_dir)
    env["MODHUB_MODULE_NAME"] = module_dir.name
    env["MODHUB_HOOK_TYPE"] = hook_type.value

    cmd = [sys.executable, str(hook_path)] if hook_path.suffix == ".py" else [str(hook_path)]
    logger.debug("Running %s hook for %s: %s", hook_type.value, module_dir.name, hook_path)

    try:
        result = subprocess.run(
            cmd,
            cwd=module_dir,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise HookError(
            f"Hook {hook_type.value} timed out after {timeout} seconds"
        ) from e
    except OSError as e:
        raise HookError(f"Failed to execute hook {hook_type.value}: {e}") from e

    if result.returncode != 0:
        raise HookError(
            f"Hook {hook_type.value} failed with exit code {result.returncode}: "
            f"{(result.stderr or result.stdout).strip()}"
        )
    return True


def _find_hook(module_dir: Path, hook_type: HookType) -> Path | None:
    """
    Find a hook script in the module's hooks/ directory.

    Looks for hooks/{hook_type}.py first, then hooks/{hook_type}.sh.
    """
    hooks_dir = module_dir / "hooks"
    if not hooks_dir.is_dir():
        return None

    for ext in (".py", ".sh"):
        hook_path = hooks_dir / f"{hook_type.value}{ext}"
        if not hook_path.is_file():
            continue
        if ext == ".sh":
            try:
                hook_path.chmod(hook_path.stat().st_mode | stat.S_IEXEC)
            except OSError:
                logger.debug("Could not mark %s executable", hook_path)
        return hook_path

    return None


def has_hook(module_dir: Path, hook_type: HookType) -> bool:
    """Check if a module ships a specific hook script."""
    return _find_hook(module_dir, hook_type) is not None
