"""
modhub - Lifecycle manager for installable host application modules.

This is the main package that exports the public API of modhub.
"""

__version__ = "0.1.0"

from types import SimpleNamespace

from modhub.core import event_bus, utils as utils_module
from modhub.modules.base import BaseModule, PaymentModule
from modhub.modules.events import LifecycleEvent
from modhub.modules.factory import create_manager
from modhub.modules.manager import ModuleManager

# Event API namespace
events = SimpleNamespace(
    consumer=event_bus.consumer,
    consumer_re=event_bus.consumer_re,
    interceptor=event_bus.interceptor,
    interceptor_re=event_bus.interceptor_re,
    start=event_bus.start,
)

# Utils API namespace
utils = SimpleNamespace(
    intercept=utils_module.intercept,
)

__all__ = [
    "__version__",
    "BaseModule",
    "LifecycleEvent",
    "ModuleManager",
    "PaymentModule",
    "create_manager",
    "events",
    "utils",
]
