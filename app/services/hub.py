"""Fan-out of roster snapshots to live observers (SSE)."""
from __future__ import annotations

import asyncio
import itertools
import json
from typing import AsyncIterator, List, Optional, Set

from loguru import logger

from app.schemas.profile import RosterEntry
from app.services.presence import PresenceSet
from app.services.registry import IdentityRegistry

_feed_ids = itertools.count(1)


class ObserverFeed:
    """One viewer's bounded queue of encoded snapshots.

    The hub only ever calls ``offer`` (never blocks). The SSE response drains
    the queue through ``events()`` until the feed is closed.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self.id = next(_feed_ids)
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def __repr__(self) -> str:
        return f"<ObserverFeed #{self.id}{' closed' if self._closed else ''}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, payload: str) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # make room for the end marker; a closing viewer does not need backlog
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._queue.put_nowait(None)

    async def get(self) -> Optional[str]:
        """Next payload, or None once the feed is closed."""
        return await self._queue.get()

    async def events(self) -> AsyncIterator[str]:
        while True:
            payload = await self.get()
            if payload is None:
                return
            yield payload


def build_snapshot(records, connected) -> List[RosterEntry]:
    return [RosterEntry.from_record(r, r.identity_key in connected) for r in records]


def encode_snapshot(entries: List[RosterEntry]) -> str:
    return json.dumps([e.model_dump(by_alias=True) for e in entries])


class BroadcastHub:
    """Holds the observer feeds and publishes a fresh snapshot to all of them.

    ``publish`` and ``subscribe`` share one lock so every feed sees snapshots
    in the same order, and a new feed always gets its initial snapshot
    before any later change.
    """

    def __init__(self, registry: IdentityRegistry, presence: PresenceSet, queue_size: int = 100) -> None:
        self._registry = registry
        self._presence = presence
        self._queue_size = queue_size
        self._feeds: Set[ObserverFeed] = set()
        self._lock = asyncio.Lock()
        self.published = 0

    def __len__(self) -> int:
        return len(self._feeds)

    async def snapshot(self) -> List[RosterEntry]:
        records = await self._registry.snapshot_all()
        connected = await self._presence.connected_keys()
        return build_snapshot(records, connected)

    async def subscribe(self) -> ObserverFeed:
        feed = ObserverFeed(maxsize=self._queue_size)
        async with self._lock:
            payload = encode_snapshot(await self.snapshot())
            feed.offer(payload)
            self._feeds.add(feed)
        logger.info(f"Observer subscribed {feed!r} ({len(self._feeds)} active)")
        return feed

    async def unsubscribe(self, feed: ObserverFeed) -> None:
        # no lock: publish iterates a copy, and discard is a single step
        if feed in self._feeds:
            self._feeds.discard(feed)
            logger.info(f"Observer unsubscribed {feed!r} ({len(self._feeds)} active)")
        feed.close()

    async def publish(self) -> int:
        """Push one fresh snapshot to every feed. Returns how many took it."""
        async with self._lock:
            try:
                payload = encode_snapshot(await self.snapshot())
            except Exception:
                logger.exception("Failed to build roster snapshot")
                return 0

            delivered = 0
            stalled: List[ObserverFeed] = []
            for feed in list(self._feeds):
                if feed.offer(payload):
                    delivered += 1
                elif feed.closed:
                    self._feeds.discard(feed)
                else:
                    stalled.append(feed)

            for feed in stalled:
                logger.warning(f"Dropping stalled observer {feed!r} ({feed.pending()} queued)")
                self._feeds.discard(feed)
                feed.close()

            self.published += 1
        return delivered

    async def close(self) -> None:
        async with self._lock:
            feeds = list(self._feeds)
            self._feeds.clear()
        for feed in feeds:
            feed.close()
        if feeds:
            logger.info(f"Closed {len(feeds)} observer feed(s)")
