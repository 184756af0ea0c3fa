"""
TOML File I/O Handler.

This module provides TOML parsing and writing for the settings file and the
module state file.

Key features:
- Parse TOML files using tomllib
- Write TOML files using tomlkit (preserves comments and formatting)
- Render a commented default configuration from the schema
"""

import tomllib
from pathlib import Path
from typing import Any

import tomlkit

from modhub.config.schema import SETTINGS_SCHEMA


class TOMLError(Exception):
    """Base exception for TOML-related errors."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Read and parse a TOML file.

    Args:
        file_path: Path to the TOML file

    Returns:
        Parsed TOML data as dictionary

    Raises:
        TOMLError: If file cannot be read or parsed
    """
    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise TOMLError(f"TOML file not found: {file_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise TOMLError(f"Failed to parse TOML file {file_path}: {e}") from e
    except OSError as e:
        raise TOMLError(f"Failed to read TOML file {file_path}: {e}") from e


def write_toml(file_path: Path, data: dict[str, Any]) -> None:
    """
    Write data to a TOML file.

    The file is written to a sibling temporary path first and then moved
    into place, so readers never observe a half-written file.

    Args:
        file_path: Path to the TOML file
        data: Data to write (None values are not representable and must be omitted)

    Raises:
        TOMLError: If file cannot be written
    """
    tmp_path = file_path.with_name(file_path.name + ".tmp")
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(tmp_path, "w", encoding="utf-8") as f:
            tomlkit.dump(data, f)
        tmp_path.replace(file_path)
    except Exception as e:
        tmp_path.unlink(missing_ok=True)
        raise TOMLError(f"Failed to write TOML file {file_path}: {e}") from e


def generate_default_config() -> str:
    """
    Render the default configuration with descriptive comments.

    Returns:
        TOML document as a string
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment("modhub configuration"))
    doc.add(tomlkit.nl())

    for section, fields in SETTINGS_SCHEMA.items():
        table = tomlkit.table()

        for key, field in fields.items():
            if field.description:
                table.add(tomlkit.comment(field.description))

            constraints = []
            if field.min is not None:
                constraints.append(f"min: {field.min}")
            if field.max is not None:
                constraints.append(f"max: {field.max}")
            if field.choices is not None:
                constraints.append(f"choices: {field.choices}")
            if constraints:
                table.add(tomlkit.comment(f"Constraints: {', '.join(constraints)}"))

            value = field.default
            if isinstance(value, dict):
                # inline so following keys stay inside this section
                inline = tomlkit.inline_table()
                inline.update(value)
                value = inline
            table.add(key, value)

        doc.add(section, table)

    return tomlkit.dumps(doc)
