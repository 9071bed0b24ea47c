"""
Event stream record parser.

This module turns an arbitrarily chunked event stream into decoded events:
- Lines end at ``\\r``, ``\\n`` or ``\\r\\n``, even when split across chunks
- ``event`` and ``data`` fields are accumulated until a blank line
- Only named records with a JSON object payload are delivered
- Unknown fields are ignored
"""

import codecs
import json
from typing import Any, Dict, List, Union

from ..utils.logging import get_logger
from ..utils.errors import DecodeError, StreamError

logger = get_logger("eventstream.parser")


class EventStreamParser:
    """Incremental parser for event stream records."""

    def __init__(self, max_buffer_size: int = 1024 * 1024):
        """
        Initialize parser.

        Args:
            max_buffer_size: Maximum length of an unterminated line, and of
                the data accumulated for one record
        """
        self.max_buffer_size = max_buffer_size
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.reset()

        self._line_count = 0
        self._record_count = 0
        self._event_count = 0
        self._dropped_count = 0

    def reset(self) -> None:
        """Drop any partially received line and record."""
        self._decoder.reset()
        self._buf = ""
        self._discard_newline = False
        self._data = ""
        self._event_name = ""
        self._has_event_name = False
        self._overflow = None

    def feed(self, chunk: Union[str, bytes]) -> List[Dict[str, Any]]:
        """
        Consume the next chunk of the stream.

        Args:
            chunk: Text or raw bytes, in arrival order

        Returns:
            Events completed by this chunk, in stream order

        Raises:
            StreamError: If an unterminated line or a record outgrows the
                buffer. Events completed earlier in the same chunk are
                returned first and the error is raised by the next call.
        """
        if self._overflow is not None:
            error, self._overflow = self._overflow, None
            raise error

        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._decoder.decode(bytes(chunk))

        events: List[Dict[str, Any]] = []
        buf = self._buf + chunk
        length = len(buf)
        pos = 0
        overflow = None

        while pos < length:
            if self._discard_newline:
                if buf[pos] == "\n":
                    pos += 1
                self._discard_newline = False
                continue

            line_end = -1
            field_length = -1

            for i in range(pos, length):
                c = buf[i]
                if c == ":":
                    if field_length < 0:
                        field_length = i - pos
                elif c == "\r":
                    self._discard_newline = True
                    line_end = i
                    break
                elif c == "\n":
                    line_end = i
                    break

            if line_end < 0:
                break

            event = self._parse_line(buf, pos, field_length, line_end)
            if event is not None:
                events.append(event)

            pos = line_end + 1

            if len(self._data) > self.max_buffer_size:
                overflow = (
                    f"Record data of {len(self._data)} characters exceeds max {self.max_buffer_size}"
                )
                break

        self._buf = buf[pos:] if pos < length else ""

        if overflow is None and len(self._buf) > self.max_buffer_size:
            overflow = (
                f"Unterminated line of {len(self._buf)} characters exceeds max {self.max_buffer_size}"
            )

        if overflow is not None:
            self._buf = ""
            self._data = ""
            self._event_name = ""
            self._has_event_name = False
            error = StreamError(overflow)
            if not events:
                raise error
            self._overflow = error

        return events

    def _parse_line(self, buf: str, pos: int, field_length: int, line_end: int):
        """Apply one complete line to the record being assembled."""
        self._line_count += 1

        if line_end == pos:
            return self._dispatch()

        if field_length < 0:
            field = buf[pos:line_end]
            value = ""
        else:
            field = buf[pos:pos + field_length]
            value_start = pos + field_length + 1
            if value_start < line_end and buf[value_start] == " ":
                value_start += 1
            value = buf[value_start:line_end]

        if field == "data":
            self._data += value + "\n"
        elif field == "event":
            self._event_name = value
            self._has_event_name = True

        return None

    def _dispatch(self):
        """Finish the current record at a blank line."""
        data, name, named = self._data, self._event_name, self._has_event_name
        self._data = ""
        self._event_name = ""
        self._has_event_name = False

        if not data or not named:
            return None

        self._record_count += 1
        try:
            event = self._decode(data)
        except DecodeError as e:
            self._dropped_count += 1
            logger.debug("record_dropped", event_name=name, reason=str(e))
            return None

        event["name"] = name
        self._event_count += 1
        return event

    @staticmethod
    def _decode(data: str) -> Dict[str, Any]:
        try:
            payload = json.loads(data)
        except ValueError as e:
            raise DecodeError(f"Invalid JSON: {e}", cause=e) from e

        if not isinstance(payload, dict):
            raise DecodeError(f"Expected object, got {type(payload).__name__}")

        return payload

    @property
    def buffered(self) -> int:
        """Characters held back waiting for a line terminator."""
        return len(self._buf)

    @property
    def stats(self) -> Dict[str, int]:
        """Get parser statistics."""
        return {
            "lines": self._line_count,
            "records": self._record_count,
            "events": self._event_count,
            "dropped": self._dropped_count,
            "buffered": self.buffered,
        }
