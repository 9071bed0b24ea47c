"""
Pytest configuration and shared fixtures for event stream tests.
"""

import socket
from typing import AsyncGenerator, Callable, List

import pytest
from aiohttp.test_utils import TestServer

from eventstream import EventStream
from tests.utils.stream_server import StreamServer


TEST_TOKEN = "test-token-123"


@pytest.fixture
async def stream_server() -> AsyncGenerator[StreamServer, None]:
    """Start a scripted event stream server on a free local port."""
    server = StreamServer()
    test_server = TestServer(server.app)
    await test_server.start_server()
    server.url = str(test_server.make_url(StreamServer.path))

    yield server

    server.release.set()
    await test_server.close()


@pytest.fixture
async def make_stream(stream_server: StreamServer) -> AsyncGenerator[Callable[..., EventStream], None]:
    """Create sessions against the test server; closed on teardown."""
    streams: List[EventStream] = []

    def factory(**kwargs) -> EventStream:
        kwargs.setdefault("reconnect_delay", 0.05)
        stream = EventStream(stream_server.url, TEST_TOKEN, **kwargs)
        streams.append(stream)
        return stream

    yield factory

    for stream in streams:
        await stream.aclose()


@pytest.fixture
def unused_url() -> str:
    """A URL on a local port with nothing listening."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/v1/events"
