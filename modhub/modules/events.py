"""
Module Lifecycle Events.

Publishes lifecycle transitions on the event bus. Subscribers register
with the bus decorators::

    from modhub.core.event_bus import consumer

    @consumer("module.install")
    def announce(descriptor):
        ...

Every event carries the module descriptor as payload.
"""

import logging
from enum import Enum

from modhub.core.event_bus import EventBus, get_event_bus

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    """Lifecycle event ids."""

    INSTALL = "module.install"
    POST_INSTALL = "module.post_install"
    UNINSTALL = "module.uninstall"
    UPGRADE = "module.upgrade"
    ENABLE = "module.enable"
    DISABLE = "module.disable"


class EventNotifier:
    """
    Publishes lifecycle events.

    Args:
        bus: Event bus to dispatch on (defaults to the global bus)
    """

    def __init__(self, bus: EventBus | None = None):
        self.bus = bus or get_event_bus()

    def publish(self, event: LifecycleEvent, descriptor) -> None:
        logger.debug("Publishing %s for %s", event.value, descriptor.name)
        self.bus.dispatch(event.value, descriptor)
