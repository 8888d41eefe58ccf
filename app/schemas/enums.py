from enum import Enum

class SessionState(str, Enum):
    unidentified = "unidentified"
    identified = "identified"
    closed = "closed"
