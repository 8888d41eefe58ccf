from __future__ import annotations

import asyncio
import json

import pytest

from app.realtime.session import Session
from app.schemas.enums import SessionState
from app.services.hub import ObserverFeed
from app.services.tracker import Tracker

from conftest import FailingStore, Outbox


async def _next(feed: ObserverFeed):
    return json.loads(await asyncio.wait_for(feed.get(), timeout=1))


async def _started(tracker: Tracker) -> Tracker:
    await tracker.start()
    return tracker


def _welcome_record(frame: str) -> dict:
    tag, body = frame.split("|", 1)
    assert tag == "WELCOME"
    return json.loads(body)


@pytest.mark.asyncio
async def test_hello_identifies_and_broadcasts(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    feed = await tracker.hub.subscribe()
    assert await _next(feed) == []
    session = Session(tracker, outbox.send)

    await session.handle("HELLO|76561|Alice|EU|UTC+1")

    assert session.state == SessionState.identified
    assert session.identity_key == "76561"

    record = _welcome_record(outbox.last())
    assert record["identityKey"] == "76561"
    assert record["displayName"] == "Alice"
    assert record["region"] == "EU"
    assert record["timezone"] == "UTC+1"
    assert record["firstSeenAt"] == record["lastSeenAt"]

    snapshot = await _next(feed)
    assert len(snapshot) == 1
    assert snapshot[0]["identityKey"] == "76561"
    assert snapshot[0]["connected"] is True
    assert snapshot[0]["lastPosition"] == "N/A"


@pytest.mark.asyncio
async def test_position_updates_and_broadcasts(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    session = Session(tracker, outbox.send)
    await session.handle("HELLO|76561|Alice|EU|UTC+1")
    feed = await tracker.hub.subscribe()
    await _next(feed)

    await session.handle("POSITION|76561|1.2345|-3|0")

    record = await tracker.registry.get("76561")
    assert record.last_position.formatted() == "1.23, -3.00, 0.00"
    assert (await _next(feed))[0]["lastPosition"] == "1.23, -3.00, 0.00"
    # positions are not acknowledged
    assert len(outbox.sent) == 1


@pytest.mark.asyncio
async def test_position_for_unknown_identity_is_silent(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    session = Session(tracker, outbox.send)
    await session.handle("HELLO|a|Alice|EU|UTC")
    feed = await tracker.hub.subscribe()
    await _next(feed)
    published = tracker.hub.published

    await session.handle("POSITION|ghost|1|2|3")

    assert await tracker.registry.get("ghost") is None
    assert tracker.hub.published == published
    assert feed.pending() == 0


@pytest.mark.asyncio
async def test_position_for_other_known_identity_is_applied(tracker: Tracker) -> None:
    await _started(tracker)
    alice = Session(tracker, Outbox().send)
    bob = Session(tracker, Outbox().send)
    await alice.handle("HELLO|a|Alice|EU|UTC")
    await bob.handle("HELLO|b|Bob|EU|UTC")

    await bob.handle("POSITION|a|7|8|9")

    assert (await tracker.registry.get("a")).last_position.formatted() == "7.00, 8.00, 9.00"
    assert (await tracker.registry.get("b")).last_position is None


@pytest.mark.asyncio
async def test_position_before_hello_is_rejected(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    await tracker.registry.upsert("a", "Alice", "EU", "UTC")
    session = Session(tracker, outbox.send)
    published = tracker.hub.published

    await session.handle("POSITION|a|1|2|3")

    assert session.state == SessionState.unidentified
    assert (await tracker.registry.get("a")).last_position is None
    assert tracker.hub.published == published
    assert outbox.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["Hello from client!", "HELLO|only|three", "POSITION|a|x|y|z", ""])
async def test_garbage_is_ignored(tracker: Tracker, outbox: Outbox, raw: str) -> None:
    await _started(tracker)
    session = Session(tracker, outbox.send)

    await session.handle(raw)

    assert session.state == SessionState.unidentified
    assert outbox.sent == []
    assert tracker.hub.published == 0

    # the connection is still usable
    await session.handle("HELLO|a|Alice|EU|UTC")
    assert session.state == SessionState.identified


@pytest.mark.asyncio
async def test_close_releases_presence_and_broadcasts(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    session = Session(tracker, outbox.send)
    await session.handle("HELLO|a|Alice|EU|UTC")
    feed = await tracker.hub.subscribe()
    await _next(feed)

    await session.close()
    await session.close()

    assert session.state == SessionState.closed
    assert not await tracker.presence.is_connected("a")
    assert (await _next(feed))[0]["connected"] is False
    assert feed.pending() == 0


@pytest.mark.asyncio
async def test_close_before_hello_does_not_broadcast(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    session = Session(tracker, outbox.send)

    await session.close()

    assert tracker.hub.published == 0


@pytest.mark.asyncio
async def test_frames_after_close_are_ignored(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    session = Session(tracker, outbox.send)
    await session.close()

    await session.handle("HELLO|a|Alice|EU|UTC")

    assert session.state == SessionState.closed
    assert await tracker.registry.get("a") is None
    assert not await tracker.presence.is_connected("a")


@pytest.mark.asyncio
async def test_many_sessions_all_disconnect(store) -> None:
    tracker = await _started(Tracker(store=store, queue_size=100))
    sessions = [Session(tracker, Outbox().send) for _ in range(20)]

    await asyncio.gather(*(s.handle(f"HELLO|id{i}|User{i}|EU|UTC") for i, s in enumerate(sessions)))
    assert len(await tracker.presence.connected_keys()) == 20

    feed = await tracker.hub.subscribe()
    await _next(feed)
    await asyncio.gather(*(s.close() for s in sessions))

    assert await tracker.presence.connected_keys() == frozenset()
    final = None
    while feed.pending():
        final = await _next(feed)
    assert len(final) == 20
    assert not any(entry["connected"] for entry in final)


@pytest.mark.asyncio
async def test_second_session_keeps_identity_connected(tracker: Tracker) -> None:
    await _started(tracker)
    first = Session(tracker, Outbox().send)
    second = Session(tracker, Outbox().send)
    await first.handle("HELLO|a|Alice|EU|UTC")
    await second.handle("HELLO|a|Alice|EU|UTC")

    await first.close()

    assert await tracker.presence.is_connected("a")
    snapshot = await tracker.hub.snapshot()
    assert snapshot[0].connected is True

    await second.close()
    assert not await tracker.presence.is_connected("a")


@pytest.mark.asyncio
async def test_repeat_hello_does_not_double_count(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    session = Session(tracker, outbox.send)

    await session.handle("HELLO|a|Alice|EU|UTC")
    await session.handle("HELLO|a|Alicia|EU|UTC")

    assert await tracker.presence.count("a") == 1
    assert _welcome_record(outbox.last())["displayName"] == "Alicia"
    await session.close()
    assert not await tracker.presence.is_connected("a")


@pytest.mark.asyncio
async def test_hello_as_another_identity_moves_presence(tracker: Tracker, outbox: Outbox) -> None:
    await _started(tracker)
    session = Session(tracker, outbox.send)

    await session.handle("HELLO|a|Alice|EU|UTC")
    await session.handle("HELLO|b|Bob|EU|UTC")

    assert session.identity_key == "b"
    assert await tracker.presence.connected_keys() == frozenset({"b"})
    assert await tracker.registry.get("a") is not None


@pytest.mark.asyncio
async def test_store_failure_is_reported_to_client(outbox: Outbox) -> None:
    tracker = await _started(Tracker(store=FailingStore(), queue_size=10))
    session = Session(tracker, outbox.send)

    await session.handle("HELLO|a|Alice|EU|UTC")

    assert session.state == SessionState.identified
    assert _welcome_record(outbox.sent[0])["identityKey"] == "a"
    assert outbox.sent[1] == "ERROR|persistence failed"
    assert await tracker.presence.is_connected("a")
    assert tracker.hub.published == 1

    await session.handle("POSITION|a|1|2|3")

    assert outbox.last() == "ERROR|persistence failed"
    assert (await tracker.registry.get("a")).last_position.formatted() == "1.00, 2.00, 3.00"
    assert tracker.hub.published == 2
