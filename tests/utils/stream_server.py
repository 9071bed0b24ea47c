"""
Scripted event stream server for integration tests.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Sequence, Union

from aiohttp import web


@dataclass
class ScriptedResponse:
    """How the server answers one request."""
    status: int = 200
    body: str = ""
    chunks: Sequence[Union[str, bytes]] = field(default_factory=tuple)
    hold: bool = False
    header_delay: float = 0.0


class StreamServer:
    """Answers each GET with the next scripted response.

    Once the script runs out, requests get an empty stream that stays open.
    """

    path = "/v1/events"

    def __init__(self):
        self.script: Deque[ScriptedResponse] = deque()
        self.requests: List[Dict[str, Any]] = []
        self.request_headers: List[Dict[str, str]] = []
        self.release = asyncio.Event()
        self.url = ""

        self.app = web.Application()
        self.app.router.add_get(self.path, self.handle)

    def stream(self, *chunks: Union[str, bytes], hold: bool = False,
               header_delay: float = 0.0) -> "StreamServer":
        self.script.append(ScriptedResponse(chunks=chunks, hold=hold, header_delay=header_delay))
        return self

    def error(self, status: int, body: str = "") -> "StreamServer":
        self.script.append(ScriptedResponse(status=status, body=body))
        return self

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append({"path": request.path, "query": dict(request.query)})
        self.request_headers.append(dict(request.headers))
        scripted = self.script.popleft() if self.script else ScriptedResponse(hold=True)

        if scripted.header_delay:
            await asyncio.sleep(scripted.header_delay)

        if scripted.status != 200:
            return web.Response(status=scripted.status, text=scripted.body,
                                content_type="application/json")

        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)

        for chunk in scripted.chunks:
            await response.write(chunk.encode() if isinstance(chunk, str) else chunk)
            await asyncio.sleep(0)

        if scripted.hold:
            await self.release.wait()

        return response
