"""Streaming client that normalizes LLM wire protocols into one event stream."""

from .client import ModelClient
from .core.exceptions import (
    ConfigurationError,
    EnvVarError,
    ModelStreamError,
    RetryLimitError,
    StreamError,
    TransportError,
    UnexpectedStatusError,
)
from .core.provider import ModelProviderInfo, WireApi
from .core.stream import ResponseStream
from .types import Completed, OutputItemDone, Prompt, ResponseEvent

__version__ = "0.1.0"

__all__ = [
    "Completed",
    "ConfigurationError",
    "EnvVarError",
    "ModelClient",
    "ModelProviderInfo",
    "ModelStreamError",
    "OutputItemDone",
    "Prompt",
    "ResponseEvent",
    "ResponseStream",
    "RetryLimitError",
    "StreamError",
    "TransportError",
    "UnexpectedStatusError",
    "WireApi",
]
