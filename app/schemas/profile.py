from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

from pydantic import field_validator

from app.core.config import TIME_FORMAT
from app.schemas.base import CamelSchema

NOT_AVAILABLE = "N/A"


class Position(CamelSchema):
    x: float
    y: float
    z: float

    @field_validator("x", "y", "z")
    @classmethod
    def check_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("coordinate must be finite")
        return v

    def formatted(self) -> str:
        return f"{self.x:.2f}, {self.y:.2f}, {self.z:.2f}"


class ProfileRecord(CamelSchema):
    identity_key: str
    display_name: str = ""
    region: str = ""
    timezone: str = ""
    first_seen_at: datetime
    last_seen_at: datetime
    last_position: Optional[Position] = None

    @field_validator("first_seen_at", "last_seen_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # sqlite hands back naive datetimes
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class RosterEntry(CamelSchema):
    display_name: str
    identity_key: str
    first_seen_at: str
    connected: bool
    last_position: str

    @classmethod
    def from_record(cls, record: ProfileRecord, connected: bool) -> "RosterEntry":
        return cls(
            display_name=record.display_name or "(unknown)",
            identity_key=record.identity_key or NOT_AVAILABLE,
            first_seen_at=format_time(record.first_seen_at),
            connected=connected,
            last_position=(
                record.last_position.formatted()
                if record.last_position is not None
                else NOT_AVAILABLE
            ),
        )


def format_time(value: Optional[datetime]) -> str:
    if value is None:
        return NOT_AVAILABLE
    # naive values are treated as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone().strftime(TIME_FORMAT)
