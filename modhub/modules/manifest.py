"""
Module Manifest System.

This module provides parsing and validation of ``module.json``.

Key features:
- Required field validation (name, version, main)
- Origin flag parsing
- Semantic version comparison used by upgrades
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from modhub.modules.origin import Origin

MANIFEST_FILENAME = "module.json"

MODULE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")


class ManifestError(Exception):
    """Base exception for manifest-related errors."""

    pass


class ValidationError(ManifestError):
    """Raised when manifest validation fails."""

    pass


@dataclass
class Manifest:
    """
    Parsed module manifest.

    Attributes:
        name: Technical module name (unique identifier)
        version: Module version shipped in this package
        main: Entry point file relative to the module directory
        display_name: Human-readable name
        description: Module description
        author: Module author
        tab: Category shown in listings
        origin: Where the module may be sourced from
        need_instance: Whether listings should load the implementation
        confirm_uninstall: Confirmation message shown before uninstalling
        limited_countries: Country codes the module is restricted to
        raw_data: Raw manifest data
    """

    name: str
    version: str
    main: str
    display_name: str = ""
    description: str = ""
    author: str = ""
    tab: str = ""
    origin: Origin = Origin.DISK
    need_instance: bool = False
    confirm_uninstall: str = ""
    limited_countries: list[str] = field(default_factory=list)
    raw_data: dict[str, Any] = field(default_factory=dict)


def is_valid_module_name(name: str) -> bool:
    """Check that a module name is a namespace-safe token."""
    return isinstance(name, str) and bool(MODULE_NAME_RE.match(name))


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two dotted version strings.

    Returns:
        -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2
    """
    parts1 = [int(x) for x in v1.split(".")]
    parts2 = [int(x) for x in v2.split(".")]

    # Pad shorter version with zeros
    max_len = max(len(parts1), len(parts2))
    parts1.extend([0] * (max_len - len(parts1)))
    parts2.extend([0] * (max_len - len(parts2)))

    for p1, p2 in zip(parts1, parts2, strict=True):
        if p1 < p2:
            return -1
        elif p1 > p2:
            return 1
    return 0


def parse_manifest(manifest_path: Path) -> Manifest:
    """
    Parse a module.json file.

    Args:
        manifest_path: Path to module.json

    Returns:
        Manifest object

    Raises:
        ManifestError: If file cannot be read or parsed
        ValidationError: If manifest is invalid
    """
    try:
        with open(manifest_path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ManifestError(f"Manifest file not found: {manifest_path}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(f"Failed to parse manifest JSON: {e}") from e
    except OSError as e:
        raise ManifestError(f"Failed to read manifest file: {e}") from e

    return manifest_from_dict(data)


def manifest_from_dict(data: Any) -> Manifest:
    """
    Build a Manifest from already decoded JSON data.

    Raises:
        ValidationError: If manifest is invalid
    """
    validate_manifest_structure(data)

    try:
        origin = Origin.parse(data.get("origin"))
    except ValueError as e:
        raise ValidationError(str(e)) from e

    return Manifest(
        name=data["name"],
        version=data["version"],
        main=data["main"],
        display_name=data.get("display_name", data["name"]),
        description=data.get("description", ""),
        author=data.get("author", ""),
        tab=data.get("tab", ""),
        origin=origin,
        need_instance=bool(data.get("need_instance", False)),
        confirm_uninstall=data.get("confirm_uninstall", ""),
        limited_countries=list(data.get("limited_countries", [])),
        raw_data=data,
    )


def validate_manifest_structure(data: Any) -> None:
    """
    Validate manifest structure and required fields.

    Raises:
        ValidationError: If manifest structure is invalid
    """
    if not isinstance(data, dict):
        raise ValidationError("Manifest must be a JSON object")

    for required in ("name", "version", "main"):
        if required not in data:
            raise ValidationError(f"Missing required field: {required}")

    name = data["name"]
    if not is_valid_module_name(name):
        raise ValidationError(
            f"Invalid module name: {name}. "
            f"Must contain only letters, digits, '_' and '-'."
        )

    version = data["version"]
    if not isinstance(version, str) or not VERSION_RE.match(version):
        raise ValidationError(
            f"Invalid version: {version}. Must be semantic version (e.g., '1.0.0')"
        )

    main = data["main"]
    if not isinstance(main, str) or not main.endswith(".py"):
        raise ValidationError(f"Invalid main entry point: {main}. Must be a .py file")
    if Path(main).is_absolute() or ".." in Path(main).parts:
        raise ValidationError(f"Invalid main entry point: {main}. Must stay inside the module")

    for text_field in ("display_name", "description", "author", "tab", "confirm_uninstall"):
        if text_field in data and not isinstance(data[text_field], str):
            raise ValidationError(f"'{text_field}' field must be a string")

    origin = data.get("origin")
    if origin is not None and not (
        isinstance(origin, str)
        or (isinstance(origin, list) and all(isinstance(o, str) for o in origin))
    ):
        raise ValidationError("'origin' field must be a string or a list of strings")

    countries = data.get("limited_countries", [])
    if not isinstance(countries, list) or not all(isinstance(c, str) for c in countries):
        raise ValidationError("'limited_countries' field must be a list of strings")
