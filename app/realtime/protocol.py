"""Pipe-delimited text frames spoken over the client WebSocket.

Inbound::

    HELLO|<identityKey>|<displayName>|<region>|<timezone>
    POSITION|<identityKey>|<x>|<y>|<z>

Outbound::

    WELCOME|<json ProfileRecord>
    ERROR|<reason>
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

from app.core.errors import MalformedMessage, UnknownCommand
from app.schemas.profile import ProfileRecord

SEPARATOR = "|"

HELLO = "HELLO"
POSITION = "POSITION"
WELCOME = "WELCOME"
ERROR = "ERROR"


@dataclass(frozen=True)
class Hello:
    identity_key: str
    display_name: str
    region: str
    timezone: str


@dataclass(frozen=True)
class PositionReport:
    identity_key: str
    x: float
    y: float
    z: float


Message = Union[Hello, PositionReport]


def _coordinate(value: str, raw: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise MalformedMessage(f"not a number: {value!r}", raw) from None
    if not math.isfinite(number):
        raise MalformedMessage(f"not a finite number: {value!r}", raw)
    return number


def parse_frame(raw: str) -> Message:
    parts = raw.strip("\r\n").split(SEPARATOR)
    command = parts[0]

    if command not in (HELLO, POSITION):
        raise UnknownCommand(command, raw)

    if len(parts) != 5:
        raise MalformedMessage(f"{command} takes 4 fields, got {len(parts) - 1}", raw)

    identity_key = parts[1].strip()
    if not identity_key:
        raise MalformedMessage("missing identity key", raw)

    if command == HELLO:
        return Hello(
            identity_key=identity_key,
            display_name=parts[2],
            region=parts[3],
            timezone=parts[4],
        )

    return PositionReport(
        identity_key=identity_key,
        x=_coordinate(parts[2], raw),
        y=_coordinate(parts[3], raw),
        z=_coordinate(parts[4], raw),
    )


def welcome(record: ProfileRecord) -> str:
    return f"{WELCOME}{SEPARATOR}{record.to_json()}"


def error(reason: str) -> str:
    return f"{ERROR}{SEPARATOR}{reason}"
