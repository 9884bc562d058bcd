"""Capability shared by every wire protocol implementation."""

from typing import Protocol

from ..core.stream import ResponseStream
from ..types.prompt import Prompt


class StreamingBackend(Protocol):
    """Anything that turns a Prompt into a ResponseStream.

    Setup failures (missing credential, retry budget exhausted before the
    stream exists) are raised from ``stream``; later failures arrive through
    the returned stream.
    """

    name: str

    async def stream(self, prompt: Prompt) -> ResponseStream:
        ...
