"""Event stream transport layer

This module provides the HTTP(S) driver that opens a streaming request,
exposes the response body as chunks and enforces the socket idle timeout.
"""

from .base import ConnectionState
from .http import HttpStreamTransport, StreamRequest

__all__ = [
    "ConnectionState",
    "HttpStreamTransport",
    "StreamRequest",
]
