"""Connection state shared by the transport and the session"""

import enum


class ConnectionState(enum.Enum):
    """Lifecycle state of one subscription"""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    ABORTED = "aborted"
