from __future__ import annotations

import asyncio
from collections import Counter
from typing import FrozenSet

from loguru import logger


class PresenceSet:
    """Open-session counts per identity key. Rebuilt empty on every start."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()
        self._lock = asyncio.Lock()

    async def mark_connected(self, identity_key: str) -> int:
        async with self._lock:
            self._counts[identity_key] += 1
            count = self._counts[identity_key]
        logger.debug(f"Presence +1 {identity_key} -> {count}")
        return count

    async def mark_disconnected(self, identity_key: str) -> int:
        async with self._lock:
            count = self._counts.get(identity_key, 0)
            if count <= 1:
                self._counts.pop(identity_key, None)
                count = 0
            else:
                count -= 1
                self._counts[identity_key] = count
        logger.debug(f"Presence -1 {identity_key} -> {count}")
        return count

    async def is_connected(self, identity_key: str) -> bool:
        async with self._lock:
            return self._counts.get(identity_key, 0) > 0

    async def count(self, identity_key: str) -> int:
        async with self._lock:
            return self._counts.get(identity_key, 0)

    async def connected_keys(self) -> FrozenSet[str]:
        async with self._lock:
            return frozenset(self._counts)
