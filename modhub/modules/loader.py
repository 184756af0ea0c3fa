"""
Dynamic Module Loader.

This module imports a module's ``main`` file and instantiates its
implementation class.

Key features:
- Syntax check with compile() before executing anything
- importlib integration for dynamic loading
- Instance caching keyed by the entry point signature and manifest version
- Explicit cache clearing (used by the cache invalidator)
"""

import importlib.util
import sys
from pathlib import Path
from types import ModuleType

from modhub.modules.base import BaseModule
from modhub.modules.hooks import DEFAULT_HOOK_TIMEOUT
from modhub.modules.manifest import Manifest


class LoaderError(Exception):
    """Base exception for loader-related errors."""

    pass


class ModuleSyntaxError(LoaderError):
    """Raised when the entry point does not even parse."""

    pass


# Instance cache: module name -> ((entry point signature, manifest version), instance)
_instance_cache: dict[str, tuple[tuple[tuple[int, int, int], str], BaseModule]] = {}


def file_signature(path: Path) -> tuple[int, int, int]:
    """Identify a file version: replaced files get a new inode, edited ones a new mtime."""
    st = path.stat()
    return (st.st_ino, st.st_mtime_ns, st.st_size)


def _python_module_name(module_name: str) -> str:
    return f"modhub_module_{module_name}"


def load_module_instance(
    module_dir: Path,
    manifest: Manifest,
    hook_timeout: int = DEFAULT_HOOK_TIMEOUT,
) -> BaseModule:
    """
    Load and instantiate a module implementation.

    Args:
        module_dir: Module directory path
        manifest: Parsed module manifest
        hook_timeout: Timeout handed to the instance for hook scripts

    Returns:
        The implementation instance (cached until the entry point changes)

    Raises:
        ModuleSyntaxError: If the entry point has a syntax error
        LoaderError: If loading fails for any other reason
    """
    entry_point = module_dir / manifest.main
    if not entry_point.is_file():
        raise LoaderError(f"Entry point not found: {entry_point}")

    signature = (file_signature(entry_point), manifest.version)
    cached = _instance_cache.get(manifest.name)
    if cached is not None and cached[0] == signature:
        return cached[1]

    try:
        source = entry_point.read_text(encoding="utf-8")
        compile(source, str(entry_point), "exec")
    except SyntaxError as e:
        raise ModuleSyntaxError(f"Parse error in {entry_point}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise LoaderError(f"Failed to read {entry_point}: {e}") from e

    python_name = _python_module_name(manifest.name)
    try:
        spec = importlib.util.spec_from_file_location(python_name, entry_point)
        if spec is None or spec.loader is None:
            raise LoaderError(f"Failed to create module spec for {entry_point}")

        module = importlib.util.module_from_spec(spec)
        # Add to sys.modules before execution
        sys.modules[python_name] = module
        spec.loader.exec_module(module)

        implementation = _find_implementation(module, python_name)
        instance = implementation(
            module_dir=module_dir, manifest=manifest, hook_timeout=hook_timeout
        )
    except Exception as e:
        sys.modules.pop(python_name, None)
        if isinstance(e, LoaderError):
            raise
        raise LoaderError(f"Failed to load module {manifest.name}: {e}") from e

    _instance_cache[manifest.name] = (signature, instance)
    return instance


def _find_implementation(module: ModuleType, python_name: str) -> type[BaseModule]:
    """
    Pick the implementation class.

    An explicit ``Module`` attribute wins; otherwise exactly one BaseModule
    subclass must be defined in the file itself.
    """
    explicit = getattr(module, "Module", None)
    if isinstance(explicit, type) and issubclass(explicit, BaseModule):
        return explicit

    candidates = [
        obj
        for obj in vars(module).values()
        if isinstance(obj, type)
        and issubclass(obj, BaseModule)
        and obj.__module__ == python_name
    ]
    if len(candidates) != 1:
        raise LoaderError(
            f"Expected exactly one BaseModule subclass in {module.__file__}, "
            f"found {len(candidates)}"
        )
    return candidates[0]


def unload_module(module_name: str) -> None:
    """Drop a module's cached instance and its sys.modules entry."""
    _instance_cache.pop(module_name, None)
    sys.modules.pop(_python_module_name(module_name), None)


def is_module_cached(module_name: str) -> bool:
    return module_name in _instance_cache


def clear_cache() -> None:
    """Clear all cached module instances."""
    for module_name in list(_instance_cache.keys()):
        unload_module(module_name)
