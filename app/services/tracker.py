from __future__ import annotations

from loguru import logger

from app.core import config
from app.services.hub import BroadcastHub
from app.services.presence import PresenceSet
from app.services.registry import IdentityRegistry
from app.services.store import open_store


class Tracker:
    """Owns one registry, presence set and hub for the lifetime of the app."""

    def __init__(self, store=None, queue_size: int | None = None):
        if store is None:
            store = open_store(config.USERS_FILE, config.STORE_URL)
        self.store = store
        self.registry = IdentityRegistry(store)
        self.presence = PresenceSet()
        self.hub = BroadcastHub(
            self.registry,
            self.presence,
            queue_size=queue_size or config.FEED_QUEUE_SIZE,
        )

    async def start(self) -> None:
        await self.registry.load()

    async def stop(self) -> None:
        await self.hub.close()
        try:
            await self.registry.flush()
        except Exception:
            logger.exception("Final registry flush failed")
