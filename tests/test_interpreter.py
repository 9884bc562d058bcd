"""Tests for the Responses API SSE interpreter."""

import asyncio
import json
import logging

import httpx
import pytest

from modelstream.core.exceptions import StreamError
from modelstream.core.interpreter import process_sse
from modelstream.core.stream import spawn_producer
from modelstream.testing import build_responses_events, encode_sse_event
from modelstream.types import Completed, OutputItemDone, assistant_message

from conftest import byte_stream

FUNCTION_CALL = {
    "type": "function_call",
    "name": "shell",
    "arguments": '{"command": ["ls"]}',
    "call_id": "call_1",
}


def sse_body(events) -> bytes:
    return b"".join(encode_sse_event(event) for event in events)


async def collect(chunks, idle_timeout: float = 5.0):
    """Run the interpreter over ``chunks`` and gather (events, error)."""

    async def producer(sender):
        await process_sse(chunks, sender, idle_timeout)

    stream = spawn_producer(producer)
    events = []
    try:
        async for event in stream:
            events.append(event)
    except StreamError as exc:
        return events, exc
    return events, None


@pytest.mark.asyncio
async def test_items_then_completed():
    body = sse_body(build_responses_events([assistant_message("hi"), FUNCTION_CALL], "resp_42"))

    events, error = await collect(byte_stream([body]))

    assert error is None
    assert events == [
        OutputItemDone(item=assistant_message("hi")),
        OutputItemDone(item=FUNCTION_CALL),
        Completed(response_id="resp_42"),
    ]


@pytest.mark.asyncio
async def test_fragmented_frames_yield_same_events():
    body = sse_body(build_responses_events([assistant_message("hello")], "resp_1"))
    chunks = [body[i:i + 7] for i in range(0, len(body), 7)]

    events, error = await collect(byte_stream(chunks))

    assert error is None
    assert events == [
        OutputItemDone(item=assistant_message("hello")),
        Completed(response_id="resp_1"),
    ]


@pytest.mark.asyncio
async def test_close_without_completed_is_error():
    body = sse_body(build_responses_events([assistant_message("partial")], response_id=None))

    events, error = await collect(byte_stream([body]))

    assert events == [OutputItemDone(item=assistant_message("partial"))]
    assert isinstance(error, StreamError)
    assert "stream closed before response.completed" in error.message


@pytest.mark.asyncio
async def test_completed_is_sent_only_at_stream_end():
    """Items after response.completed are still forwarded before Completed."""
    events_in = build_responses_events([], "resp_9")
    events_in += build_responses_events([assistant_message("late")], response_id=None)

    events, error = await collect(byte_stream([sse_body(events_in)]))

    assert error is None
    assert events == [
        OutputItemDone(item=assistant_message("late")),
        Completed(response_id="resp_9"),
    ]


@pytest.mark.asyncio
async def test_idle_timeout_after_items():
    first = sse_body(build_responses_events([assistant_message("a")], response_id=None))

    async def stalled():
        yield first
        await asyncio.sleep(10)
        yield b""

    events, error = await collect(stalled(), idle_timeout=0.05)

    assert events == [OutputItemDone(item=assistant_message("a"))]
    assert isinstance(error, StreamError)
    assert "idle timeout" in error.message


@pytest.mark.asyncio
async def test_malformed_frames_are_skipped(caplog):
    good = build_responses_events([assistant_message("ok")], "resp_1")
    body = (
        b"data: {not json\n\n"
        + encode_sse_event({"no_type": True})
        + encode_sse_event({"type": "response.output_item.done", "item": {"role": "x"}})
        + sse_body(good)
    )

    with caplog.at_level(logging.WARNING, logger="modelstream"):
        events, error = await collect(byte_stream([body]))

    assert error is None
    assert events == [
        OutputItemDone(item=assistant_message("ok")),
        Completed(response_id="resp_1"),
    ]
    assert "Skipped 3 undecodable SSE frame(s)" in caplog.text


@pytest.mark.asyncio
async def test_completed_without_id_is_skipped():
    body = encode_sse_event({"type": "response.completed", "response": {}})

    events, error = await collect(byte_stream([body]))

    assert events == []
    assert isinstance(error, StreamError)


@pytest.mark.asyncio
async def test_ignored_and_unknown_kinds_emit_nothing():
    extra = [
        {"type": "response.created", "response": {"id": "resp_1"}},
        {"type": "response.output_text.delta", "delta": "h"},
        {"type": "response.reasoning_summary_text.delta", "delta": "x"},
        {"type": "response.something_new", "payload": 1},
    ]
    body = sse_body(build_responses_events([], "resp_1", extra_events=extra))

    events, error = await collect(byte_stream([body]))

    assert error is None
    assert events == [Completed(response_id="resp_1")]


@pytest.mark.asyncio
async def test_transport_error_mid_stream():
    first = sse_body(build_responses_events([assistant_message("a")], response_id=None))

    async def broken():
        yield first
        raise httpx.ReadError("connection reset")

    events, error = await collect(broken())

    assert events == [OutputItemDone(item=assistant_message("a"))]
    assert isinstance(error, StreamError)
    assert "connection reset" in error.message


@pytest.mark.asyncio
async def test_invalid_utf8_is_framing_error():
    events, error = await collect(byte_stream([b"data: \xff\n\n"]))

    assert events == []
    assert isinstance(error, StreamError)


@pytest.mark.asyncio
async def test_replay_is_deterministic():
    body = sse_body(
        build_responses_events(
            [assistant_message("one"), FUNCTION_CALL, assistant_message("two")],
            "resp_7",
        )
    )

    first, _ = await collect(byte_stream([body]))
    second, _ = await collect(byte_stream([body[:10], body[10:]]))

    assert first == second


@pytest.mark.asyncio
async def test_unknown_item_types_are_forwarded():
    item = {"type": "reasoning", "id": "rs_1", "summary": []}
    body = sse_body(build_responses_events([item], "resp_1"))

    events, _ = await collect(byte_stream([body]))

    assert events[0] == OutputItemDone(item=item)
    assert json.dumps(events[0].item) == json.dumps(item)
