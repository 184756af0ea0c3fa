"""
mpm commands, one module per operation flag.
"""

__all__ = []
