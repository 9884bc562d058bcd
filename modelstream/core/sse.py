"""SSE (Server-Sent Events) framing utilities."""

import codecs
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

logger = logging.getLogger("modelstream")


class SSEDecodeError(ValueError):
    """Raised when the byte stream cannot be framed as server-sent events."""
    pass


@dataclass
class SSEEvent:
    """One dispatched event: joined ``data`` lines plus optional event name."""

    data: str
    event: Optional[str] = None
    id: Optional[str] = None

    def encode(self) -> bytes:
        lines: list[str] = []
        if self.event is not None:
            lines.append(f"event: {self.event}")
        if self.id is not None:
            lines.append(f"id: {self.id}")
        for item in self.data.split("\n"):
            lines.append(f"data: {item}" if item else "data:")
        text = "\n".join(lines) + "\n\n"
        return text.encode("utf-8")


class SSEDecoder:
    """Incremental decoder turning raw byte chunks into ``SSEEvent`` records.

    Bytes must be valid UTF-8; anything else raises ``SSEDecodeError``.
    Lines may end in ``\\n``, ``\\r\\n`` or ``\\r``. Comment lines (leading
    ``:``) and ``retry`` fields are ignored, and an event without any
    ``data`` line is never dispatched.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="strict")
        self._buffer = ""
        self._pending_cr = False
        self._data_lines: list[str] = []
        self._event: Optional[str] = None
        self._id: Optional[str] = None

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        try:
            text = self._utf8.decode(chunk)
        except UnicodeDecodeError as exc:
            raise SSEDecodeError(f"invalid UTF-8 in event stream: {exc}") from exc
        if self._pending_cr and text.startswith("\n"):
            text = text[1:]
        self._pending_cr = text.endswith("\r")
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        self._buffer += text

        events: list[SSEEvent] = []
        while True:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[SSEEvent]:
        """Dispatch whatever is left once the byte stream has ended."""
        try:
            tail = self._utf8.decode(b"", final=True)
        except UnicodeDecodeError as exc:
            raise SSEDecodeError(f"truncated UTF-8 sequence at end of stream: {exc}") from exc
        leftover = self._buffer + tail
        self._buffer = ""
        events: list[SSEEvent] = []
        if leftover:
            event = self._process_line(leftover)
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            logger.debug("Dispatching unterminated SSE event at end of stream")
            events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[SSEEvent]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data_lines.append(value)
        elif field == "event":
            self._event = value or None
        elif field == "id":
            self._id = value or None
        return None

    def _dispatch(self) -> Optional[SSEEvent]:
        if not self._data_lines:
            self._event = None
            return None
        event = SSEEvent(data="\n".join(self._data_lines), event=self._event, id=self._id)
        self._data_lines = []
        self._event = None
        return event


async def aiter_sse_events(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[SSEEvent]:
    """Yield every ``SSEEvent`` framed from ``byte_stream``."""
    decoder = SSEDecoder()
    async for chunk in byte_stream:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event
