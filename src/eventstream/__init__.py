"""
eventstream - A reconnecting client for server-sent event streams.

This package subscribes to a long-lived HTTP(S) event stream and provides:
- Incremental decoding of event/data records into JSON events
- Automatic reconnection after a fixed delay
- Listener isolation, so a failing handler never breaks the stream
"""

__version__ = "0.1.0"

from .session import EventStream
from .streaming.parser import EventStreamParser
from .transport.base import ConnectionState
from .utils.errors import (
    AbortedError,
    ConfigurationError,
    DecodeError,
    EventStreamError,
    HttpError,
    ListenerError,
    NetworkError,
    StreamError,
)

__all__ = [
    "EventStream",
    "EventStreamParser",
    "ConnectionState",
    "EventStreamError",
    "AbortedError",
    "ConfigurationError",
    "DecodeError",
    "HttpError",
    "ListenerError",
    "NetworkError",
    "StreamError",
]
