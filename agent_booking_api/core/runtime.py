"""Wiring of the core components into one service container."""

import logging
from dataclasses import dataclass

from ..config import Settings
from ..storage import RecordStore
from .agents import AgentCatalog
from .balance import BalanceService
from .chat import ChatService
from .ledger import Ledger
from .lifecycle import SessionLifecycleController
from .notifications import EventHub
from .regeneration import RegenerationScheduler
from .registry import AgentSessionRegistry
from .timers import SessionTimers

logger = logging.getLogger(__name__)


@dataclass
class CoreServices:
    """Every core component, sharing one store, notifier and settings."""

    store: RecordStore
    settings: Settings
    events: EventHub
    ledger: Ledger
    balance: BalanceService
    catalog: AgentCatalog
    registry: AgentSessionRegistry
    timers: SessionTimers
    lifecycle: SessionLifecycleController
    regeneration: RegenerationScheduler
    chat: ChatService

    async def shutdown(self) -> None:
        """Stop background work; sessions stay persisted for the next recovery."""
        await self.regeneration.stop()
        self.timers.cancel_all()
        logger.info("Core services stopped")


def build_core(store: RecordStore, settings: Settings, events: EventHub | None = None) -> CoreServices:
    """Create the core components on top of a connected store."""
    events = events or EventHub(queue_size=settings.notification_queue_size)
    ledger = Ledger(store)
    balance = BalanceService(store, ledger, events, settings)
    catalog = AgentCatalog(store, settings)
    registry = AgentSessionRegistry(store, settings)
    timers = SessionTimers()
    lifecycle = SessionLifecycleController(
        store, balance, registry, catalog, timers, events, settings
    )
    regeneration = RegenerationScheduler(store, balance, settings)
    chat = ChatService(store, events, settings)

    return CoreServices(
        store=store,
        settings=settings,
        events=events,
        ledger=ledger,
        balance=balance,
        catalog=catalog,
        registry=registry,
        timers=timers,
        lifecycle=lifecycle,
        regeneration=regeneration,
        chat=chat,
    )


# Global core instance
_core: CoreServices | None = None


def set_core(core: CoreServices | None) -> None:
    global _core
    _core = core


def get_core() -> CoreServices:
    """Get the core services (dependency injection)."""
    if _core is None:
        raise RuntimeError("Core services not initialized")
    return _core
