"""Wire protocol implementations.

- responses: OpenAI Responses API, incremental SSE
- chat: Chat Completions SSE aggregated per turn
- gemini: single-shot generateContent replayed as a stream
"""

from .base import StreamingBackend
from .chat import ChatBackend, aggregate
from .gemini import GeminiBackend
from .responses import ResponsesBackend, stream_from_fixture

__all__ = [
    "ChatBackend",
    "GeminiBackend",
    "ResponsesBackend",
    "StreamingBackend",
    "aggregate",
    "stream_from_fixture",
]
