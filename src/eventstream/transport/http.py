"""HTTP(S) streaming transport built on aiohttp"""

import asyncio
from typing import AsyncIterator, Dict, Optional

import aiohttp
from yarl import URL

from ..utils.logging import get_logger
from ..utils.errors import AbortedError

logger = get_logger(__name__)


class StreamRequest:
    """Ownership handle for one in-flight streaming GET.

    The request starts as soon as the handle is created. ``abort()`` may be
    called at any point, before or after the response has begun.
    """

    def __init__(self, session: aiohttp.ClientSession, url: URL,
                 timeout: aiohttp.ClientTimeout, label: str):
        self.url = url
        self.label = label
        self.response: Optional[aiohttp.ClientResponse] = None
        self.aborted = False
        self._task = asyncio.ensure_future(self._open(session, timeout))

    async def _open(self, session: aiohttp.ClientSession,
                    timeout: aiohttp.ClientTimeout) -> aiohttp.ClientResponse:
        return await session.get(self.url, timeout=timeout)

    async def start(self) -> aiohttp.ClientResponse:
        """Wait for the status line and headers.

        Raises:
            AbortedError: If ``abort()`` ran before the response began
            aiohttp.ClientError: On DNS, TCP, TLS or timeout failures
        """
        try:
            await asyncio.wait((self._task,))
        except asyncio.CancelledError:
            self.abort()
            raise

        if self.aborted or self._task.cancelled():
            self.abort()
            raise AbortedError(f"Connection to {self.label} aborted")

        self.response = self._task.result()
        return self.response

    @property
    def status(self) -> Optional[int]:
        return self.response.status if self.response is not None else None

    async def read_text(self) -> str:
        """Read the complete body, used for error responses."""
        body = await self.response.read()
        return body.decode(self.response.get_encoding() or "utf-8", errors="replace")

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield body bytes as they arrive, without buffering the body."""
        try:
            async for chunk in self.response.content.iter_any():
                yield chunk
        except aiohttp.ServerTimeoutError:
            logger.warning("idle_timeout", url=self.label)
            self.destroy()
            raise

    def destroy(self) -> None:
        """Close the underlying socket without waiting for the body."""
        if self.response is not None:
            self.response.close()

    def abort(self) -> None:
        """Cancel a pending open and close any response. Idempotent."""
        self.aborted = True

        if not self._task.done():
            self._task.cancel()
        elif not self._task.cancelled() and self._task.exception() is None:
            self._task.result().close()

        self.destroy()


class HttpStreamTransport:
    """Issues streaming GET requests over one shared aiohttp session"""

    def __init__(self, idle_timeout: float = 13.0,
                 headers: Optional[Dict[str, str]] = None):
        self.idle_timeout = idle_timeout
        self.headers = dict(headers or {})
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def timeout(self) -> aiohttp.ClientTimeout:
        # No total limit: the stream is meant to stay open indefinitely
        return aiohttp.ClientTimeout(
            total=None,
            sock_connect=self.idle_timeout,
            sock_read=self.idle_timeout
        )

    def open(self, url: URL, label: Optional[str] = None) -> StreamRequest:
        """Start a GET request and return its handle"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)

        logger.debug("opening_request", url=label or str(url.with_query(None)))
        return StreamRequest(self._session, url, self.timeout, label or str(url.with_query(None)))

    async def close(self) -> None:
        """Release pooled connections"""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def __repr__(self) -> str:
        return f"HttpStreamTransport(idle_timeout={self.idle_timeout})"
