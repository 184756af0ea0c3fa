"""
modhub Module System - Lifecycle management of installable modules.

This module handles:
- Manifest parsing and implementation loading
- Descriptor building and the module registry
- Acquisition from disk, archives, git and the marketplace
- Upgrade migrations, permissions, cache invalidation and events
- The lifecycle orchestrator (ModuleManager)
"""

__all__ = []
