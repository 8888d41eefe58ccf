from __future__ import annotations

import itertools
from typing import Awaitable, Callable, Optional

from loguru import logger

from app.core.errors import MalformedMessage, StoreWriteFailure, UnknownCommand
from app.realtime import protocol
from app.realtime.protocol import Hello, PositionReport
from app.schemas.enums import SessionState
from app.services.tracker import Tracker

Send = Callable[[str], Awaitable[None]]

_session_ids = itertools.count(1)


class Session:
    """One live client connection.

    unidentified --HELLO--> identified --close--> closed

    Anything other than HELLO is refused until the client has identified.
    Closing releases this session's hold on its identity's presence.
    """

    def __init__(self, tracker: Tracker, send: Send, peer: str = "") -> None:
        self.id = next(_session_ids)
        self.peer = peer
        self.state = SessionState.unidentified
        self.identity_key: Optional[str] = None
        self._tracker = tracker
        self._send = send

    def __repr__(self) -> str:
        parts = [f"#{self.id}", self.state.value, self.identity_key or "-"]
        if self.peer:
            parts.append(self.peer)
        return f"<Session {' '.join(parts)}>"

    @property
    def closed(self) -> bool:
        return self.state == SessionState.closed

    async def handle(self, raw: str) -> None:
        if self.closed:
            logger.debug(f"{self!r} ignoring frame after close")
            return

        try:
            message = protocol.parse_frame(raw)
        except UnknownCommand:
            logger.warning(f"{self!r} unknown or unnamed command: {raw!r}")
            return
        except MalformedMessage as e:
            logger.warning(f"{self!r} malformed frame ({e.reason}): {raw!r}")
            return

        if isinstance(message, Hello):
            await self._identify(message)
        elif isinstance(message, PositionReport):
            if self.state != SessionState.identified:
                logger.warning(f"{self!r} position before HELLO rejected")
                return
            await self._report_position(message)

    async def _identify(self, msg: Hello) -> None:
        tracker = self._tracker
        persisted = True
        try:
            record = await tracker.registry.upsert(
                msg.identity_key, msg.display_name, msg.region, msg.timezone
            )
        except StoreWriteFailure as e:
            record = e.record
            persisted = False

        if self.identity_key != msg.identity_key:
            if self.identity_key is not None:
                logger.info(f"{self!r} re-identifying as {msg.identity_key}")
                await tracker.presence.mark_disconnected(self.identity_key)
            await tracker.presence.mark_connected(msg.identity_key)
            self.identity_key = msg.identity_key
        self.state = SessionState.identified

        await self._send(protocol.welcome(record))
        if not persisted:
            await self._send(protocol.error("persistence failed"))
        await tracker.hub.publish()

    async def _report_position(self, msg: PositionReport) -> None:
        if msg.identity_key != self.identity_key:
            logger.debug(f"{self!r} reporting position for {msg.identity_key}")

        try:
            record = await self._tracker.registry.update_position(msg.identity_key, msg.x, msg.y, msg.z)
        except StoreWriteFailure as e:
            record = e.record
            await self._send(protocol.error("persistence failed"))

        if record is None:
            return
        await self._tracker.hub.publish()

    async def close(self) -> None:
        if self.closed:
            return
        self.state = SessionState.closed
        logger.info(f"Client disconnected {self!r}")

        if self.identity_key is not None:
            await self._tracker.presence.mark_disconnected(self.identity_key)
            await self._tracker.hub.publish()
