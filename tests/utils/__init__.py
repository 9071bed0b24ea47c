"""
Test utilities for the event stream client.
"""

from .async_helpers import NotificationRecorder, wait_for_condition
from .stream_server import ScriptedResponse, StreamServer

__all__ = [
    "NotificationRecorder",
    "wait_for_condition",
    "ScriptedResponse",
    "StreamServer",
]
