"""Testing utilities for in-process provider simulations."""

from .fake_upstream import (
    FakeUpstream,
    UpstreamResponse,
    build_chat_stream_chunks,
    build_gemini_response,
    build_responses_events,
    encode_sse_event,
)

__all__ = [
    "FakeUpstream",
    "UpstreamResponse",
    "build_chat_stream_chunks",
    "build_gemini_response",
    "build_responses_events",
    "encode_sse_event",
]
