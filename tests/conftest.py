from __future__ import annotations

import os

# keep test runs from writing logs/app.log or reading a developer's .env store
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from app.core.errors import StoreWriteFailure
from app.services.store import JsonFileStore
from app.services.tracker import Tracker


class Outbox:
    """Stands in for a client socket's send side."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send(self, text: str) -> None:
        self.sent.append(text)

    def last(self) -> str:
        return self.sent[-1]


class FailingStore:
    def __init__(self, records=None) -> None:
        self.records = records or {}
        self.save_calls = 0

    def __repr__(self) -> str:
        return "FailingStore()"

    def load(self):
        return dict(self.records)

    def save(self, records) -> None:
        self.save_calls += 1
        raise StoreWriteFailure("disk full")


@pytest.fixture
def users_file(tmp_path):
    return tmp_path / "users.json"


@pytest.fixture
def store(users_file) -> JsonFileStore:
    return JsonFileStore(users_file)


@pytest.fixture
def tracker(store) -> Tracker:
    return Tracker(store=store, queue_size=10)


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()
