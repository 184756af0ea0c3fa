"""
modhub Core - Infrastructure shared by every component.

This module contains:
- Event Bus: consumers and interceptors for lifecycle notifications
- Utils: intercept() for interceptors
"""

__all__ = []
