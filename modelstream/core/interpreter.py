"""Interpreter turning a Responses API SSE byte stream into ResponseEvents.

Responses API frames look like:

    event: response.output_item.done
    data: {"type":"response.output_item.done","item":{...}}

    event: response.completed
    data: {"type":"response.completed","response":{"id":"resp_123",...}}

Each finalized item is forwarded as soon as its frame arrives. The terminal
``Completed`` event is only emitted once the transport closes after a
``response.completed`` envelope has been seen.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from ..types.events import Completed, OutputItemDone
from ..types.items import parse_response_item
from .exceptions import StreamError
from .sse import SSEDecodeError, aiter_sse_events
from .stream import EventSender

logger = logging.getLogger("modelstream")

EVENT_OUTPUT_ITEM_DONE = "response.output_item.done"
EVENT_RESPONSE_COMPLETED = "response.completed"

IGNORED_EVENTS = frozenset(
    {
        "response.content_part.done",
        "response.created",
        "response.function_call_arguments.delta",
        "response.in_progress",
        "response.output_item.added",
        "response.output_text.delta",
        "response.output_text.done",
        "response.reasoning_summary_part.added",
        "response.reasoning_summary_text.delta",
        "response.reasoning_summary_text.done",
    }
)


async def process_sse(
    byte_stream: AsyncIterator[bytes],
    sender: EventSender,
    idle_timeout: float,
) -> None:
    """Read frames from ``byte_stream`` and forward events to ``sender``.

    Args:
        byte_stream: Raw bytes of the event stream.
        sender: Writing end of the response channel.
        idle_timeout: Seconds of silence after which the stream is treated
            as disconnected.

    Returns once a terminal event has been sent, or as soon as a send fails
    because the consumer dropped the stream.
    """
    frames = aiter_sse_events(byte_stream)
    response_id: Optional[str] = None
    skipped = 0

    try:
        while True:
            try:
                sse = await asyncio.wait_for(frames.__anext__(), timeout=idle_timeout)
            except StopAsyncIteration:
                if response_id is not None:
                    await sender.send(Completed(response_id=response_id))
                else:
                    await sender.send(
                        StreamError("stream closed before response.completed")
                    )
                return
            except asyncio.TimeoutError:
                await sender.send(StreamError("idle timeout waiting for SSE"))
                return
            except (SSEDecodeError, httpx.HTTPError) as exc:
                logger.debug("SSE Error: %s", exc)
                await sender.send(StreamError(str(exc) or exc.__class__.__name__))
                return

            try:
                event = json.loads(sse.data)
            except json.JSONDecodeError as exc:
                logger.debug("Failed to parse SSE event: %s, data: %s", exc, sse.data)
                skipped += 1
                continue
            kind = event.get("type") if isinstance(event, dict) else None
            if not isinstance(kind, str):
                logger.debug("SSE event without type discriminator: %s", sse.data[:200])
                skipped += 1
                continue

            if kind == EVENT_OUTPUT_ITEM_DONE:
                item = parse_response_item(event.get("item"))
                if item is None:
                    logger.debug("failed to parse ResponseItem from output_item.done")
                    skipped += 1
                    continue
                if not await sender.send(OutputItemDone(item=item)):
                    return
            elif kind == EVENT_RESPONSE_COMPLETED:
                completed_id = _completed_response_id(event.get("response"))
                if completed_id is None:
                    logger.debug("failed to parse ResponseCompleted: %s", sse.data[:200])
                    skipped += 1
                    continue
                response_id = completed_id
            elif kind in IGNORED_EVENTS:
                continue
            else:
                logger.debug("sse event: %s", kind)
    finally:
        if skipped:
            logger.warning("Skipped %d undecodable SSE frame(s)", skipped)
        await frames.aclose()


def _completed_response_id(response: Any) -> Optional[str]:
    if not isinstance(response, dict):
        return None
    value = response.get("id")
    if isinstance(value, str):
        return value
    return None
