"""
Module Upgrade Runner.

This module runs the migration scripts a module ships for versions
newer than the one recorded as installed.

Migration scripts live in ``<module>/upgrade/upgrade-X.Y.Z.py`` and
define ``upgrade(module) -> bool``, where ``module`` is the loaded
implementation instance.
"""

import importlib.util
import logging
import re
import sys
from functools import cmp_to_key
from pathlib import Path

from modhub.modules.manifest import compare_versions

logger = logging.getLogger(__name__)

UPGRADE_DIR = "upgrade"
UPGRADE_SCRIPT_RE = re.compile(r"^upgrade-(\d+\.\d+\.\d+)\.py$")


class UpgradeError(Exception):
    """Raised when a migration script cannot be loaded."""

    pass


def list_upgrade_scripts(module_dir: Path) -> list[tuple[str, Path]]:
    """Return (version, script) pairs sorted by ascending version."""
    upgrade_dir = module_dir / UPGRADE_DIR
    if not upgrade_dir.is_dir():
        return []

    scripts = []
    for path in upgrade_dir.iterdir():
        match = UPGRADE_SCRIPT_RE.match(path.name)
        if match and path.is_file():
            scripts.append((match.group(1), path))

    scripts.sort(key=cmp_to_key(lambda a, b: compare_versions(a[0], b[0])))
    return scripts


def pending_upgrade_scripts(
    module_dir: Path, installed_version: str | None, disk_version: str | None
) -> list[tuple[str, Path]]:
    """Scripts with ``installed < version <= disk``."""
    if not disk_version:
        return []
    return [
        (version, path)
        for version, path in list_upgrade_scripts(module_dir)
        if (installed_version is None or compare_versions(version, installed_version) > 0)
        and compare_versions(version, disk_version) <= 0
    ]


def _load_script(name: str, version: str, path: Path):
    python_name = f"modhub_upgrade_{name}_{version.replace('.', '_')}"
    spec = importlib.util.spec_from_file_location(python_name, path)
    if spec is None or spec.loader is None:
        raise UpgradeError(f"Failed to create module spec for {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise UpgradeError(f"Failed to load {path.name}: {e}") from e
    finally:
        sys.modules.pop(python_name, None)

    func = getattr(module, "upgrade", None)
    if not callable(func):
        raise UpgradeError(f"{path.name} does not define upgrade(module)")
    return func


class UpgradeRunner:
    """
    Runs pending migrations against the module registry.

    Args:
        repository: Registry handing out module descriptors
    """

    def __init__(self, repository):
        self.repository = repository

    def run_migrations(self, name: str) -> bool:
        """
        Run every pending migration of a module in ascending order.

        Returns:
            True when all scripts succeeded (or none were pending), False
            when the implementation is invalid or a script failed. Failures
            are recorded on the implementation's error list.
        """
        descriptor = self.repository.get_module(name)
        if not descriptor.has_valid_instance():
            logger.warning("Cannot upgrade module %s: implementation is invalid", name)
            return False

        instance = descriptor.get_instance()
        try:
            scripts = pending_upgrade_scripts(
                descriptor.disk.path, descriptor.database.version, descriptor.disk.version
            )
        except ValueError as e:
            logger.error("Cannot order migrations of module %s: %s", name, e)
            instance.add_error(f"Upgrade failed: {e}")
            return False
        if not scripts:
            logger.debug("No pending migrations for module %s", name)
            return True

        for version, path in scripts:
            logger.info("Running migration %s of module %s", version, name)
            try:
                func = _load_script(name, version, path)
                result = bool(func(instance))
            except Exception as e:
                logger.error("Migration %s of module %s raised: %s", version, name, e)
                instance.add_error(f"Upgrade to {version} failed: {e}")
                return False

            if not result:
                logger.error("Migration %s of module %s returned a failure", version, name)
                instance.add_error(f"Upgrade to {version} failed.")
                return False

        return True
