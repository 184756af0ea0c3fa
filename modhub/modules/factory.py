"""
Wiring of a ModuleManager from settings.
"""

import logging

import httpx

from modhub.config.runtime import Settings
from modhub.core.event_bus import EventBus
from modhub.modules.acquisition import AcquisitionService
from modhub.modules.builder import ModuleBuilder
from modhub.modules.cache import CacheInvalidator
from modhub.modules.events import EventNotifier
from modhub.modules.manager import ModuleManager
from modhub.modules.marketplace import MarketplaceClient
from modhub.modules.permissions import Actor, PermissionGate, PermissionPolicy
from modhub.modules.repository import ModuleRepository
from modhub.modules.state_store import StateStore
from modhub.modules.upgrade import UpgradeRunner

logger = logging.getLogger(__name__)


def create_manager(
    settings: Settings,
    actor: Actor | None = None,
    bus: EventBus | None = None,
    transport: httpx.BaseTransport | None = None,
) -> ModuleManager:
    """
    Build a ModuleManager and its collaborators.

    Args:
        settings: Loaded settings
        actor: Acting user (None for system context)
        bus: Event bus for lifecycle events (defaults to the global bus)
        transport: httpx transport for the marketplace client

    Returns:
        A ready ModuleManager
    """
    modules_dir = settings.modules_dir
    modules_dir.mkdir(parents=True, exist_ok=True)

    state_store = StateStore(settings.state_file)
    builder = ModuleBuilder(
        modules_dir,
        state_store,
        action_url=settings.urls.action,
        configure_url=settings.urls.configure,
        hook_timeout=settings.modules.hook_timeout,
    )
    repository = ModuleRepository(builder, state_store)
    marketplace = MarketplaceClient(
        base_url=settings.marketplace.url,
        timeout=settings.marketplace.timeout,
        token=settings.marketplace.token,
        transport=transport,
    )

    logger.debug("Module manager for %s (state in %s)", modules_dir, settings.state_file)
    return ModuleManager(
        repository=repository,
        acquisition=AcquisitionService(modules_dir, marketplace),
        upgrade_runner=UpgradeRunner(repository),
        permissions=PermissionGate(PermissionPolicy.from_settings(settings.permissions), actor),
        cache_invalidator=CacheInvalidator(settings.cache_dir, repository),
        events=EventNotifier(bus),
        builder=builder,
    )
