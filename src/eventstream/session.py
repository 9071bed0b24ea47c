"""
Event stream session controller.

This module owns one logical subscription:
- Opening the streaming request and validating the response
- Feeding body chunks through the record parser
- Delivering notifications through the safe emitter
- Reconnecting after a fixed delay until explicitly aborted
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

import aiohttp
from yarl import URL

from .streaming.parser import EventStreamParser
from .transport.base import ConnectionState
from .transport.http import HttpStreamTransport, StreamRequest
from .utils.config import EventStreamConfig, StreamConfig
from .utils.errors import (
    AbortedError,
    ConfigurationError,
    HttpError,
    NetworkError,
    StreamError,
)
from .utils.logging import get_logger
from .utils.notifications import EventEmitter

logger = get_logger("eventstream.session")

DEFAULT_RECONNECT_DELAY = 2.0
DEFAULT_IDLE_TIMEOUT = 13.0


class EventStream:
    """A self-healing subscription to one event stream.

    Notifications:
        event: decoded JSON object with an injected ``name`` key
        response: ``{"status_code", "body"}`` for a non-200 answer
        disconnect: the stream ended or failed after connecting
        reconnect: a reconnect attempt is about to start
        reconnect-error: the NetworkError or HttpError of a failed attempt
        error: ListenerError raised by another listener
    """

    def __init__(
        self,
        uri: str,
        token: str,
        *,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        max_buffer_size: int = 1024 * 1024,
        transport: Optional[HttpStreamTransport] = None,
    ):
        if not uri:
            raise ConfigurationError("Event stream uri is required")
        if token is None:
            raise ConfigurationError("Event stream token is required")

        self._uri = uri
        self._token = token
        self.origin: Optional[str] = None
        self.reconnect_delay = reconnect_delay
        self.idle_timeout = idle_timeout
        self.state = ConnectionState.IDLE

        self._emitter = EventEmitter()
        self._parser = EventStreamParser(max_buffer_size=max_buffer_size)
        self._transport = transport or HttpStreamTransport(idle_timeout=idle_timeout)

        self._request: Optional[StreamRequest] = None
        self._stream_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        self._stats: Dict[str, Any] = {
            "events_received": 0,
            "disconnects": 0,
            "reconnects": 0,
            "reconnect_errors": 0,
            "connected_at": None,
            "disconnected_at": None,
        }

    @classmethod
    def from_config(cls, config: Union[EventStreamConfig, StreamConfig]) -> "EventStream":
        """Build a session from loaded configuration."""
        stream = config.stream if isinstance(config, EventStreamConfig) else config
        if not stream.uri or stream.token is None:
            raise ConfigurationError("Configuration must set stream.uri and stream.token")

        return cls(
            stream.uri,
            stream.token,
            reconnect_delay=stream.reconnect_delay,
            idle_timeout=stream.idle_timeout,
            max_buffer_size=stream.max_buffer_size,
        )

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def token(self) -> str:
        return self._token

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.STREAMING

    # Listener registration

    def on(self, event: str, handler: Callable[..., Any]) -> Callable[..., Any]:
        return self._emitter.on(event, handler)

    def once(self, event: str, handler: Callable[..., Any]) -> Callable[..., Any]:
        return self._emitter.once(event, handler)

    def off(self, event: str, handler: Callable[..., Any]) -> bool:
        return self._emitter.off(event, handler)

    def listener_count(self, event: str) -> int:
        return self._emitter.listener_count(event)

    # Lifecycle

    async def connect(self) -> "EventStream":
        """
        Open the stream.

        Returns once the server has answered 200 and streaming has begun.

        Raises:
            NetworkError: If the connection could not be established
            HttpError: If the server answered with any other status
            AbortedError: If abort() ran before the response began
        """
        url = URL(self._uri)
        self.origin = f"{url.scheme}://{url.host}"
        if url.explicit_port:
            self.origin += f":{url.explicit_port}"

        previous, self._request = self._request, None
        if previous is not None:
            previous.abort()
        self._cancel_task(self._stream_task)
        self._cancel_task(self._reconnect_task)

        self.state = ConnectionState.CONNECTING
        request = self._request = self._transport.open(
            url.update_query(access_token=self._token), label=self._uri
        )
        logger.info("connecting", uri=self._uri)

        try:
            response = await request.start()
        except AbortedError:
            self._release(request)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._release(request)
            logger.warning("connect_failed", uri=self._uri, error=str(e), error_type=type(e).__name__)
            raise NetworkError(self._uri, cause=e) from e

        if response.status != 200:
            await self._reject(request, response.status)

        self._parser.reset()
        self.state = ConnectionState.STREAMING
        self._stats["connected_at"] = datetime.now(timezone.utc)
        self._stream_task = asyncio.create_task(self._stream(request))

        logger.info("connected", uri=self._uri, origin=self.origin)
        return self

    async def _reject(self, request: StreamRequest, status: int) -> None:
        """Consume an error response, report it and fail the connect."""
        try:
            text = await request.read_text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._release(request)
            request.destroy()
            raise NetworkError(self._uri, cause=e) from e

        request.destroy()
        self._release(request)

        body: Any = text
        try:
            body = json.loads(text)
        except ValueError:
            pass

        await self._emitter.emit_safe("response", {"status_code": status, "body": body})

        error = HttpError(self._uri, status, body)
        logger.warning("http_error", uri=self._uri, status_code=status,
                       error_description=error.error_description)
        raise error

    def abort(self) -> None:
        """Stop streaming for good and detach all listeners. Idempotent."""
        request, self._request = self._request, None
        if request is not None:
            request.abort()

        was_aborted = self.state == ConnectionState.ABORTED
        self.state = ConnectionState.ABORTED

        for task in (self._reconnect_task, self._stream_task):
            if task is not None and not task.done():
                task.cancel()

        self._emitter.remove_all_listeners()

        if not was_aborted:
            logger.info("aborted", uri=self._uri)

    async def aclose(self) -> None:
        """Abort and release the underlying HTTP session."""
        self.abort()

        current = asyncio.current_task()
        pending = [
            task for task in (self._reconnect_task, self._stream_task)
            if task is not None and task is not current and not task.done()
        ]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self._transport.close()

    @asynccontextmanager
    async def session(self):
        """Context manager for a connected stream"""
        await self.connect()
        try:
            yield self
        finally:
            await self.aclose()

    # Streaming

    async def _stream(self, request: StreamRequest) -> None:
        """Pump body chunks through the parser until the stream stops."""
        try:
            async for chunk in request.iter_chunks():
                for event in self._parser.feed(chunk):
                    if self._request is not request:
                        return
                    self._stats["events_received"] += 1
                    await self._emitter.emit_safe("event", event)
            logger.info("stream_ended", uri=self._uri)
        except (aiohttp.ClientError, asyncio.TimeoutError, StreamError) as e:
            logger.warning("stream_failed", uri=self._uri, error=str(e),
                           error_type=type(e).__name__)
            request.destroy()

        await self._end(request)

    async def _end(self, request: StreamRequest) -> None:
        if self._request is not request:
            # Aborted or superseded by a newer connect
            logger.debug("stream_end_ignored", uri=self._uri)
            return

        self._request = None
        self.state = ConnectionState.DISCONNECTED
        self._stats["disconnects"] += 1
        self._stats["disconnected_at"] = datetime.now(timezone.utc)

        await self._emitter.emit_safe("disconnect")

        if self.state == ConnectionState.DISCONNECTED and self._request is None:
            self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        """Retry connect() every reconnect_delay until it succeeds or abort() runs."""
        while True:
            logger.info("reconnect_scheduled", uri=self._uri, delay=self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)
            if self.state == ConnectionState.ABORTED:
                return

            self.state = ConnectionState.RECONNECTING
            self._stats["reconnects"] += 1
            await self._emitter.emit_safe("reconnect")
            if self.state == ConnectionState.ABORTED:
                return

            try:
                await self.connect()
                return
            except AbortedError:
                return
            except (NetworkError, HttpError) as e:
                if self.state == ConnectionState.ABORTED:
                    return
                self._stats["reconnect_errors"] += 1
                logger.warning("reconnect_failed", uri=self._uri,
                               error_description=e.error_description)
                await self._emitter.emit_safe("reconnect-error", e)
                if self.state == ConnectionState.ABORTED:
                    return

    def _release(self, request: StreamRequest) -> None:
        """Drop ownership of a request that did not reach streaming."""
        if self._request is request:
            self._request = None
        if self.state == ConnectionState.CONNECTING:
            self.state = (
                ConnectionState.DISCONNECTED
                if self._stats["connected_at"] is not None
                else ConnectionState.IDLE
            )

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    # Introspection

    def get_stats(self) -> Dict[str, Any]:
        """Get session statistics"""
        return {
            **self._stats,
            "state": self.state.value,
            "parser": self._parser.stats,
        }

    def __repr__(self) -> str:
        return f"EventStream(uri={self._uri}, state={self.state.value})"
