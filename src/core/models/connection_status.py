"""Connection status enumeration, single source of truth for connectivity."""
from enum import Enum


class ConnectionStatus(Enum):
    """Enumeration of all possible connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    PAIRING = "pairing"
    CONNECTED = "connected"
    INTERMITTENT = "intermittent"
    ERROR = "error"
