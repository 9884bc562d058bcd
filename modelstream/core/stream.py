"""Bounded channel bridging a producer task to a pulling consumer."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

from ..types.events import Completed, ResponseEvent
from .exceptions import ModelStreamError, StreamError

logger = logging.getLogger("modelstream")

DEFAULT_CHANNEL_CAPACITY = 16

StreamItem = Union[ResponseEvent, ModelStreamError]

_EOF = object()
_PRODUCER_TASKS: set[asyncio.Task] = set()


class _Channel:
    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("channel capacity must be positive")
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self.sender_closed = False
        self.receiver_closed = False

    def close_receiver(self) -> None:
        if self.receiver_closed:
            return
        self.receiver_closed = True
        # Free every slot so a producer blocked in put() wakes up.
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break


class EventSender:
    """Writing end of the channel. Owned by exactly one producer task."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    @property
    def is_closed(self) -> bool:
        return self._channel.receiver_closed or self._channel.sender_closed

    async def send(self, item: StreamItem) -> bool:
        """Queue ``item``; returns False once the consumer has gone away."""
        if self.is_closed:
            return False
        await self._channel.queue.put(item)
        return not self._channel.receiver_closed

    def close(self) -> None:
        channel = self._channel
        if channel.sender_closed:
            return
        channel.sender_closed = True
        if channel.receiver_closed:
            return
        try:
            channel.queue.put_nowait(_EOF)
        except asyncio.QueueFull:
            # The consumer checks sender_closed once it drains the queue.
            pass


class ResponseStream:
    """Consumer handle: ``async for event in stream``.

    Errors delivered by the producer are raised from iteration. After a
    ``Completed`` event or an error the stream is exhausted.
    """

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel
        self._done = False
        self.task: Optional[asyncio.Task] = None

    def __aiter__(self) -> "ResponseStream":
        return self

    async def __anext__(self) -> ResponseEvent:
        channel = self._channel
        if self._done or channel.receiver_closed:
            raise StopAsyncIteration
        if channel.sender_closed and channel.queue.empty():
            self._finish()
            raise StopAsyncIteration
        item = await channel.queue.get()
        if item is _EOF:
            self._finish()
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._finish()
            raise item
        if isinstance(item, Completed):
            self._finish()
        return item

    async def aclose(self) -> None:
        """Drop the stream; the producer stops at its next send."""
        self._finish()

    async def __aenter__(self) -> "ResponseStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __del__(self) -> None:
        channel = getattr(self, "_channel", None)
        if channel is not None and not channel.receiver_closed:
            channel.close_receiver()

    def _finish(self) -> None:
        self._done = True
        self._channel.close_receiver()


def channel(capacity: int = DEFAULT_CHANNEL_CAPACITY) -> tuple[EventSender, ResponseStream]:
    """Create a bounded channel and return its two ends."""
    chan = _Channel(capacity)
    return EventSender(chan), ResponseStream(chan)


def spawn_producer(
    producer: Callable[[EventSender], Awaitable[None]],
    capacity: int = DEFAULT_CHANNEL_CAPACITY,
    name: Optional[str] = None,
) -> ResponseStream:
    """Run ``producer(sender)`` as the background task feeding a new stream."""
    sender, stream = channel(capacity)

    async def _run() -> None:
        try:
            await producer(sender)
        except ModelStreamError as exc:
            await sender.send(exc)
        except Exception as exc:
            logger.exception("Response producer failed: %s", exc)
            await sender.send(StreamError(f"{exc.__class__.__name__}: {exc}"))
        finally:
            sender.close()

    task = asyncio.get_running_loop().create_task(_run(), name=name)
    _register_producer_task(task)
    stream.task = task
    return stream


def _register_producer_task(task: asyncio.Task) -> None:
    """Keep a strong reference until the producer finishes."""
    _PRODUCER_TASKS.add(task)

    def _cleanup(_task: asyncio.Task) -> None:
        _PRODUCER_TASKS.discard(_task)

    task.add_done_callback(_cleanup)
