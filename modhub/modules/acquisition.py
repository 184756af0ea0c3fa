"""
Module Acquisition Service.

This module gets module packages onto disk: from a local archive or
directory, an archive URL, a git repository or the marketplace.

Key features:
- Location detection and canonical name resolution
- Zip extraction with member path checks
- Replace-in-place with backup and restore on failure
- Marketplace pulls that report failure as False
- Removal of module directories
"""

import logging
import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from modhub.modules import git_ops
from modhub.modules.loader import unload_module
from modhub.modules.manifest import (
    MANIFEST_FILENAME,
    Manifest,
    ManifestError,
    is_valid_module_name,
    parse_manifest,
)
from modhub.modules.marketplace import MarketplaceClient, MarketplaceError

logger = logging.getLogger(__name__)

URL_SCHEMES = ("http://", "https://")


class AcquisitionError(Exception):
    """Raised when a package cannot be fetched, unpacked or put in place."""

    pass


@dataclass
class _StagedPackage:
    """A package unpacked somewhere readable, waiting to be moved in place."""

    root: Path
    manifest: Manifest
    tmp_dir: Path | None = None

    def cleanup(self) -> None:
        if self.tmp_dir is not None:
            shutil.rmtree(self.tmp_dir, ignore_errors=True)


def is_location(source: str) -> bool:
    """
    Tell a package location from a bare module name.

    Existing files, http(s) URLs and ``git+`` URLs are locations. A
    directory only counts when written as a path (with a separator or a
    leading ``.`` or ``~``), so a bare module name never matches a folder
    in the current directory.
    """
    if source.startswith(URL_SCHEMES) or git_ops.is_git_location(source):
        return True
    try:
        path = Path(source).expanduser()
        if path.is_file():
            return True
        return path.is_dir() and (
            "/" in source or os.sep in source or source.startswith((".", "~"))
        )
    except OSError:
        return False


def find_manifest(root: Path) -> tuple[Path | None, Path | None]:
    """
    Find module.json in an unpacked package.

    Returns (manifest_path, module_root). The manifest may sit at the root
    or inside a single top-level directory.
    """
    direct = root / MANIFEST_FILENAME
    if direct.is_file():
        return direct, root

    children = [p for p in root.iterdir() if p.is_dir() and not p.name.startswith(".")]
    if len(children) == 1:
        candidate = children[0] / MANIFEST_FILENAME
        if candidate.is_file():
            return candidate, children[0]

    return None, None


def safe_extract(archive: Path, destination: Path) -> None:
    """
    Extract a zip archive, refusing members that would land outside ``destination``.

    Raises:
        AcquisitionError: On an invalid archive or an escaping member
    """
    destination = destination.resolve()
    try:
        with zipfile.ZipFile(archive) as zf:
            for member in zf.namelist():
                target = (destination / member).resolve()
                if target != destination and destination not in target.parents:
                    raise AcquisitionError(
                        f"Archive member escapes the extraction directory: {member}"
                    )
            zf.extractall(destination)
    except zipfile.BadZipFile as e:
        raise AcquisitionError(f"Not a valid zip archive: {archive}") from e
    except OSError as e:
        raise AcquisitionError(f"Failed to extract {archive}: {e}") from e


class AcquisitionService:
    """
    Puts module packages into ``modules_dir``.

    A location staged by :meth:`resolve_name_from_package` is reused by the
    following :meth:`materialize_from_location` call, so remote packages
    are fetched once per operation.
    """

    def __init__(self, modules_dir: Path, marketplace: MarketplaceClient | None = None):
        self.modules_dir = modules_dir
        self.marketplace = marketplace or MarketplaceClient()
        self._staged: dict[str, _StagedPackage] = {}

    def close(self) -> None:
        """Drop leftover staged packages and close the marketplace client."""
        self.discard_staged()
        self.marketplace.close()

    # ----------------------------
    # Staging
    # ----------------------------

    def _stage(self, location: str) -> _StagedPackage:
        staged = self._staged.get(location)
        if staged is not None:
            return staged

        tmp_dir = Path(tempfile.mkdtemp(prefix="modhub-acquire-"))
        try:
            staged = self._unpack(location, tmp_dir)
        except Exception:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            raise
        if staged.tmp_dir is None:
            shutil.rmtree(tmp_dir, ignore_errors=True)

        self._staged[location] = staged
        return staged

    def _unpack(self, location: str, tmp_dir: Path) -> _StagedPackage:
        if git_ops.is_git_location(location):
            repo_url, tag = git_ops.split_git_location(location)
            repo_dir = tmp_dir / "repo"
            try:
                git_ops.clone_module(repo_url, repo_dir, tag)
            except git_ops.GitError as e:
                raise AcquisitionError(str(e)) from e
            shutil.rmtree(repo_dir / ".git", ignore_errors=True)
            return self._staged_from(repo_dir, tmp_dir)

        if location.startswith(URL_SCHEMES):
            filename = Path(urlparse(location).path).name or "package.zip"
            archive = tmp_dir / filename
            try:
                self.marketplace.download(location, archive)
            except MarketplaceError as e:
                raise AcquisitionError(str(e)) from e
            return self._extract_staged(archive, tmp_dir)

        path = Path(location).expanduser()
        if path.is_dir():
            return self._staged_from(path, None)
        if path.is_file():
            return self._extract_staged(path, tmp_dir)
        raise AcquisitionError(f"Package location not found: {location}")

    def _extract_staged(self, archive: Path, tmp_dir: Path) -> _StagedPackage:
        unpacked = tmp_dir / "unpacked"
        unpacked.mkdir()
        safe_extract(archive, unpacked)
        return self._staged_from(unpacked, tmp_dir)

    def _staged_from(self, root: Path, tmp_dir: Path | None) -> _StagedPackage:
        manifest_path, module_root = find_manifest(root)
        if manifest_path is None or module_root is None:
            raise AcquisitionError(
                f"Could not find {MANIFEST_FILENAME} in package. "
                "Expected at root or inside a single top-level folder."
            )
        try:
            manifest = parse_manifest(manifest_path)
        except ManifestError as e:
            raise AcquisitionError(f"{MANIFEST_FILENAME} is invalid: {e}") from e
        return _StagedPackage(root=module_root, manifest=manifest, tmp_dir=tmp_dir)

    def discard_staged(self) -> None:
        """Drop every staged package that was never materialized."""
        for staged in self._staged.values():
            staged.cleanup()
        self._staged.clear()

    # ----------------------------
    # Public operations
    # ----------------------------

    def resolve_name_from_package(self, location: str) -> str:
        """
        Return the technical name of the module a location contains.

        Raises:
            AcquisitionError: If the package cannot be read
        """
        return self._stage(location).manifest.name

    def materialize_from_location(self, location: str) -> str:
        """
        Put the package at ``location`` into the modules directory.

        An existing copy of the module is backed up and restored if the
        replacement fails.

        Returns:
            The module name

        Raises:
            AcquisitionError: If the package cannot be fetched or put in place
        """
        staged = self._stage(location)
        try:
            name = staged.manifest.name
            target = self.modules_dir / name
            if target.exists() and target.resolve() == staged.root.resolve():
                return name
            self._replace(name, staged, target)
            logger.info("Module %s %s placed in %s", name, staged.manifest.version, target)
            return name
        finally:
            self._staged.pop(location, None)
            staged.cleanup()

    def _replace(self, name: str, staged: _StagedPackage, target: Path) -> None:
        self.modules_dir.mkdir(parents=True, exist_ok=True)
        backup = None
        if target.exists():
            backup = Path(tempfile.mkdtemp(prefix=f".{name}-backup-", dir=self.modules_dir))
            shutil.move(str(target), str(backup / name))

        try:
            if staged.tmp_dir is not None:
                shutil.move(str(staged.root), str(target))
            else:
                shutil.copytree(staged.root, target)
        except OSError as e:
            shutil.rmtree(target, ignore_errors=True)
            if backup is not None:
                shutil.move(str(backup / name), str(target))
                shutil.rmtree(backup, ignore_errors=True)
                logger.warning("Restored previous copy of module %s", name)
            raise AcquisitionError(f"Failed to put module {name} in place: {e}") from e

        if backup is not None:
            shutil.rmtree(backup, ignore_errors=True)
        unload_module(name)

    def pull_from_marketplace(self, name: str) -> bool:
        """
        Download and place the latest marketplace release of a module.

        Returns:
            True on success, False on any failure (never raises)
        """
        if not self.marketplace.enabled:
            logger.debug("Marketplace disabled, not pulling %s", name)
            return False

        try:
            release = self.marketplace.get_release(name)
            with tempfile.TemporaryDirectory(prefix="modhub-pull-") as tmp:
                archive = self.marketplace.download(release.download_url, Path(tmp) / f"{name}.zip")
                staged_name = self.resolve_name_from_package(str(archive))
                if staged_name != name:
                    self.discard_staged()
                    raise AcquisitionError(
                        f"Marketplace package for {name} contains module {staged_name}"
                    )
                self.materialize_from_location(str(archive))
        except (MarketplaceError, AcquisitionError) as e:
            logger.warning("Could not pull module %s from the marketplace: %s", name, e)
            return False

        logger.info("Pulled module %s %s from the marketplace", name, release.version)
        return True

    def delete_from_disk(self, name: str) -> bool:
        """Remove a module directory. Returns False when there is nothing to remove or removal fails."""
        if not is_valid_module_name(name):
            return False

        target = self.modules_dir / name
        if not target.is_dir():
            logger.debug("Module %s is not on disk", name)
            return False

        try:
            shutil.rmtree(target)
        except OSError as e:
            logger.warning("Failed to delete module %s from disk: %s", name, e)
            return False

        unload_module(name)
        logger.info("Module %s deleted from disk", name)
        return True
