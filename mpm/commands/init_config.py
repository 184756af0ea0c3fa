"""
mpm --init-config command.
"""

import sys
from typing import Any

import modhub.config


def init_config_command(args: Any) -> int:
    """Write a commented default settings file."""
    try:
        path = modhub.config.init_config(args.config)
    except modhub.config.ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Wrote default config to {path}")
    return 0
