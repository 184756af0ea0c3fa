"""
mpm - modhub module management CLI tool.

This is the command-line interface for managing modhub modules.
Supports installation, removal, upgrade, query, toggling and reset.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
