"""Core module initialization."""

from .backoff import backoff
from .exceptions import (
    ConfigurationError,
    EnvVarError,
    ModelStreamError,
    RetryLimitError,
    StreamError,
    TransportError,
    UnexpectedStatusError,
)
from .executor import RetryingRequestExecutor
from .interpreter import process_sse
from .provider import ModelProviderInfo, WireApi, parse_provider
from .sse import SSEDecoder, SSEEvent
from .stream import EventSender, ResponseStream, channel, spawn_producer

__all__ = [
    "ConfigurationError",
    "EnvVarError",
    "EventSender",
    "ModelProviderInfo",
    "ModelStreamError",
    "ResponseStream",
    "RetryLimitError",
    "RetryingRequestExecutor",
    "SSEDecoder",
    "SSEEvent",
    "StreamError",
    "TransportError",
    "UnexpectedStatusError",
    "WireApi",
    "backoff",
    "channel",
    "parse_provider",
    "process_sse",
    "spawn_producer",
]
