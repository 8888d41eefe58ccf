"""Identity registry: the durable map of identity key -> ProfileRecord."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from app.core.errors import StoreCorrupt, StoreWriteFailure
from app.schemas.profile import Position, ProfileRecord


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IdentityRegistry:
    """Owns every ProfileRecord and its persistence.

    All mutations and store writes happen under one ``asyncio.Lock``. Store
    I/O is pushed to a worker thread while the lock is held, so writes are
    serialised without stalling the event loop. Callers only ever get copies.
    """

    def __init__(self, store):
        self._store = store
        self._records: Dict[str, ProfileRecord] = {}
        self._lock = asyncio.Lock()
        self._dirty = False

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    async def load(self) -> None:
        async with self._lock:
            corrupt = False
            try:
                raw = await asyncio.to_thread(self._store.load)
            except StoreCorrupt as e:
                logger.warning(f"Failed to parse store {self._store!r}, starting fresh: {e}")
                raw = {}
                corrupt = True

            records: Dict[str, ProfileRecord] = {}
            skipped = 0
            for key, value in raw.items():
                try:
                    record = ProfileRecord.model_validate(value)
                except ValidationError as e:
                    logger.warning(f"Skipping unreadable record {key!r}: {e.error_count()} error(s)")
                    skipped += 1
                    continue
                records[record.identity_key] = record

            if skipped:
                logger.error(f"{skipped} unreadable profile(s) will be dropped from {self._store!r} on the next save")
            if corrupt or skipped:
                await self._backup_locked()

            self._records = records
            self._dirty = False
            logger.info(f"Loaded {len(records)} profile(s) from {self._store!r}")

    async def _backup_locked(self) -> None:
        try:
            target = await asyncio.to_thread(self._store.backup)
        except StoreWriteFailure as e:
            logger.error(f"Could not keep a copy of the old store: {e}")
            return
        if target is not None:
            logger.warning(f"Previous store contents kept at {target}")

    async def save(self) -> None:
        async with self._lock:
            await self._save_locked()

    async def flush(self) -> None:
        """Retry a save that failed earlier. No-op when the store is current."""
        async with self._lock:
            if self._dirty:
                await self._save_locked()

    async def _save_locked(self) -> None:
        data = {
            key: record.model_dump(by_alias=True, mode="json")
            for key, record in self._records.items()
        }
        try:
            await asyncio.to_thread(self._store.save, data)
        except StoreWriteFailure as e:
            self._dirty = True
            logger.error(f"Store write failed, {len(data)} profile(s) held in memory: {e}")
            raise
        self._dirty = False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def upsert(
        self,
        identity_key: str,
        display_name: str,
        region: str,
        timezone: str,
        now: Optional[datetime] = None,
    ) -> ProfileRecord:
        now = now or utcnow()
        async with self._lock:
            record = self._records.get(identity_key)
            if record is None:
                record = ProfileRecord(
                    identity_key=identity_key,
                    display_name=display_name,
                    region=region,
                    timezone=timezone,
                    first_seen_at=now,
                    last_seen_at=now,
                )
                self._records[identity_key] = record
                logger.info(f"New user: {display_name} ({identity_key})")
            else:
                record.display_name = display_name
                record.region = region
                record.timezone = timezone
                record.last_seen_at = now
                logger.info(f"Returning user: {display_name} ({identity_key})")

            resolved = record.model_copy(deep=True)
            try:
                await self._save_locked()
            except StoreWriteFailure as e:
                e.record = resolved
                raise
            return resolved

    async def update_position(self, identity_key: str, x: float, y: float, z: float) -> Optional[ProfileRecord]:
        async with self._lock:
            record = self._records.get(identity_key)
            if record is None:
                logger.debug(f"Position for unknown identity {identity_key!r} dropped")
                return None

            record.last_position = Position(x=x, y=y, z=z)
            resolved = record.model_copy(deep=True)
            try:
                await self._save_locked()
            except StoreWriteFailure as e:
                e.record = resolved
                raise
            return resolved

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, identity_key: str) -> Optional[ProfileRecord]:
        async with self._lock:
            record = self._records.get(identity_key)
            return record.model_copy(deep=True) if record else None

    async def snapshot_all(self) -> List[ProfileRecord]:
        async with self._lock:
            records = [r.model_copy(deep=True) for r in self._records.values()]
        records.sort(key=lambda r: (r.first_seen_at, r.identity_key))
        return records
