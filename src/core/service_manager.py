# External libs
import asyncio
import logging
import os
from typing import Optional

# Internal libs
from core.event_hub import EventHub
from core.models.config_data import SimulatorConfig
from core.scheduler import Scheduler
from core.services.sensor_engine import SensorEngine
from core.services.store import FileStore, InMemoryStore, SensorStore, StoreWriter

logger = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))


def create_store(storage_dir: str) -> SensorStore:
    """File store under storage_dir (relative paths from the project root), in memory when empty."""
    if not storage_dir:
        return InMemoryStore()
    if not os.path.isabs(storage_dir):
        storage_dir = os.path.join(PROJECT_ROOT, storage_dir)
    return FileStore(storage_dir)


class ServiceManager:
    """Builds the engine and its collaborators, and runs the scheduler on the event loop."""

    def __init__(self):
        self.engine: Optional[SensorEngine] = None
        self.store: Optional[SensorStore] = None
        self.store_writer: Optional[StoreWriter] = None
        self.scheduler_task: Optional[asyncio.Task] = None

    async def start_services(self, config: SimulatorConfig, store: Optional[SensorStore] = None) -> SensorEngine:
        """Create the engine and start driving its scheduler from the running loop."""
        logger.info("Starting background services...")
        loop = asyncio.get_running_loop()

        event_hub = EventHub()
        event_hub.init(loop)

        self.engine = SensorEngine(config=config, scheduler=Scheduler(), event_hub=event_hub)

        self.store = store if store is not None else create_store(config.storage_dir)
        self.store_writer = StoreWriter(self.store, event_hub)
        self.store_writer.attach()

        self.scheduler_task = loop.create_task(self.engine.scheduler.run())

        logger.info("Background services started.")
        return self.engine

    async def stop_services(self):
        """Stop background services."""
        if self.engine is not None:
            self.engine.shutdown()
            self.engine.scheduler.stop()
        if self.store_writer is not None:
            self.store_writer.detach()
        if self.scheduler_task is not None:
            self.scheduler_task.cancel()
            try:
                await self.scheduler_task
            except asyncio.CancelledError:
                pass
            self.scheduler_task = None
        logger.info("Background services stopped.")
