class TrackerError(Exception):
    """Base class for roster tracker errors."""


class MalformedMessage(TrackerError):
    """Inbound frame could not be parsed."""

    def __init__(self, reason: str, raw: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.raw = raw


class UnknownCommand(MalformedMessage):
    def __init__(self, command: str, raw: str = ""):
        super().__init__(f"unknown command: {command!r}", raw)
        self.command = command


class StoreCorrupt(TrackerError):
    """Durable store exists but cannot be decoded."""


class StoreWriteFailure(TrackerError):
    """Durable store could not be written. In-memory state is still applied."""

    def __init__(self, message: str, record=None):
        super().__init__(message)
        # the in-memory record the failed write was meant to persist
        self.record = record
