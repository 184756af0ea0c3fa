"""
Configuration Schema.

This module declares the sections of the modhub configuration file and
validates values against them.

Key features:
- Typed field definitions with min/max/choices constraints
- Per-section validation with defaults for missing keys
- The built-in schema for every modhub section
"""

import copy
from dataclasses import dataclass
from typing import Any


class SchemaError(Exception):
    """Raised when a field definition itself is inconsistent."""

    pass


class ValidationError(SchemaError):
    """Raised when a configured value fails validation."""

    pass


@dataclass
class ConfigField:
    """
    A single configuration key with its type and constraints.

    Attributes:
        type_: Expected Python type of the value
        default: Value used when the key is absent
        description: Human-readable description (rendered as TOML comment)
        min: Minimum value for numbers, minimum length for str/list
        max: Maximum value for numbers, maximum length for str/list
        choices: Allowed values (optional)
    """

    type_: type
    default: Any
    description: str = ""
    min: Any = None
    max: Any = None
    choices: list[Any] | None = None

    def __post_init__(self):
        if not isinstance(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {self.type_.__name__}"
            )

        if (self.min is not None or self.max is not None) and self.type_ not in (
            int,
            float,
            str,
            list,
        ):
            raise SchemaError(
                f"min/max constraints only supported for int, float, str, list. Got {self.type_.__name__}"
            )

        if self.choices is not None and self.default not in self.choices:
            raise SchemaError(
                f"Default value {self.default!r} not in choices {self.choices}"
            )

    def validate(self, value: Any) -> None:
        """
        Validate a value against this field.

        Raises:
            ValidationError: If the value has the wrong type or breaks a constraint
        """
        # int is accepted where float is declared, TOML writes 30 for 30.0
        if self.type_ is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)

        if not isinstance(value, self.type_):
            raise ValidationError(
                f"Expected type {self.type_.__name__}, got {type(value).__name__}"
            )

        if self.choices is not None and value not in self.choices:
            raise ValidationError(
                f"Value {value!r} not in allowed choices {self.choices}"
            )

        if self.type_ in (int, float):
            measured, label = value, "Value"
        elif self.type_ in (str, list):
            measured, label = len(value), "Length"
        else:
            return

        if self.min is not None and measured < self.min:
            raise ValidationError(f"{label} {measured} is less than minimum {self.min}")
        if self.max is not None and measured > self.max:
            raise ValidationError(f"{label} {measured} is greater than maximum {self.max}")


# section -> key -> field
SETTINGS_SCHEMA: dict[str, dict[str, ConfigField]] = {
    "modules": {
        "directory": ConfigField(str, "modules", "Directory holding one folder per module", min=1),
        "state_file": ConfigField(
            str, "var/modules.toml", "TOML file recording installed/active state", min=1
        ),
        "hook_timeout": ConfigField(
            int, 60, "Timeout in seconds for module hook scripts", min=1, max=3600
        ),
    },
    "marketplace": {
        "url": ConfigField(str, "", "Marketplace base URL (empty disables remote pulls)"),
        "timeout": ConfigField(float, 30.0, "HTTP timeout in seconds", min=0.1, max=600.0),
        "token": ConfigField(str, "", "Bearer token sent to the marketplace"),
    },
    "cache": {
        "directory": ConfigField(str, "var/cache", "Derived cache directory flushed after changes", min=1),
    },
    "permissions": {
        "roles": ConfigField(
            dict, {"admin": ["*"]}, "Role name -> list of allowed actions ('*' for all)"
        ),
        "protected": ConfigField(
            list, [], "Modules only full-access roles may uninstall, disable or reset"
        ),
    },
    "logging": {
        "level": ConfigField(
            str, "INFO", "Log level", choices=["DEBUG", "INFO", "WARNING", "ERROR"]
        ),
        "file": ConfigField(str, "", "Rotating log file (empty logs to console only)"),
    },
    "urls": {
        "action": ConfigField(
            str, "/modules/{action}/{name}", "URL template for module actions", min=1
        ),
        "configure": ConfigField(
            str, "/modules/configure/{name}", "URL template for module configuration", min=1
        ),
    },
}


def validate_section(section: str, values: dict[str, Any]) -> dict[str, Any]:
    """
    Validate one section and fill in defaults for missing keys.

    Args:
        section: Section name (must exist in SETTINGS_SCHEMA)
        values: Raw values read from the file

    Returns:
        A new dict with every key of the section present

    Raises:
        ValidationError: On unknown sections/keys or invalid values
    """
    if section not in SETTINGS_SCHEMA:
        raise ValidationError(f"Unknown configuration section: {section}")

    schema = SETTINGS_SCHEMA[section]
    for key in values:
        if key not in schema:
            raise ValidationError(f"Unknown configuration field: {section}.{key}")

    merged: dict[str, Any] = {}
    for key, field in schema.items():
        value = values[key] if key in values else copy.deepcopy(field.default)
        try:
            field.validate(value)
        except ValidationError as e:
            raise ValidationError(f"Field '{section}.{key}': {e}") from e
        merged[key] = float(value) if field.type_ is float else value

    return merged


def generate_defaults() -> dict[str, dict[str, Any]]:
    """Return the default value of every section."""
    return {
        section: {key: copy.deepcopy(field.default) for key, field in fields.items()}
        for section, fields in SETTINGS_SCHEMA.items()
    }
