"""
Module Permission Gate.

This module answers "may the current actor do this to that module?".

Key features:
- Role-based policy: role name -> allowed actions, "*" grants everything
- Protected modules that only full-access roles may take down
- No actor means a system context (CLI, maintenance scripts): everything is allowed
"""

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

WILDCARD = "*"

ACTIONS = frozenset(
    {
        "install",
        "uninstall",
        "upgrade",
        "enable",
        "disable",
        "enable_variant",
        "disable_variant",
    }
)

# Actions that take a module down; protected modules need a full-access role
DESTRUCTIVE_ACTIONS = frozenset({"uninstall", "disable", "disable_variant"})


@dataclass(frozen=True)
class Actor:
    """The user an operation runs for."""

    name: str
    roles: tuple[str, ...] = ()


@dataclass
class PermissionPolicy:
    """
    Allowed actions per role.

    Attributes:
        roles: Role name -> list of action names (or "*")
        protected: Module names only full-access roles may take down
    """

    roles: dict[str, list[str]] = field(default_factory=lambda: {"admin": [WILDCARD]})
    protected: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, section: Any) -> "PermissionPolicy":
        """Build the policy from the [permissions] settings section."""
        return cls(
            roles={role: list(actions) for role, actions in section.roles.items()},
            protected=list(section.protected),
        )

    def grants(self, role: str, action: str) -> bool:
        allowed = self.roles.get(role, [])
        return WILDCARD in allowed or action in allowed

    def has_full_access(self, role: str) -> bool:
        return WILDCARD in self.roles.get(role, [])


class PermissionGate:
    """
    Permission checks for one actor.

    Args:
        policy: Role policy
        actor: The acting user, None for system context
    """

    def __init__(self, policy: PermissionPolicy | None = None, actor: Actor | None = None):
        self.policy = policy or PermissionPolicy()
        self.actor = actor

    def is_allowed(self, action: str, name: str | None = None) -> bool:
        """
        Check whether the actor may perform ``action`` (on module ``name``).

        Unknown actions are refused.
        """
        if action not in ACTIONS:
            logger.warning("Permission check for unknown action: %s", action)
            return False

        if self.actor is None:
            return True

        if not any(self.policy.grants(role, action) for role in self.actor.roles):
            logger.debug("Actor %s may not %s", self.actor.name, action)
            return False

        if name is not None and name in self.policy.protected and action in DESTRUCTIVE_ACTIONS:
            if not any(self.policy.has_full_access(role) for role in self.actor.roles):
                logger.debug("Actor %s may not %s protected module %s", self.actor.name, action, name)
                return False

        return True
