"""Type definitions for the client."""

from .events import Completed, OutputItemDone, ResponseEvent
from .items import (
    ContentItem,
    FunctionCallItem,
    FunctionCallOutputItem,
    InputItem,
    MessageItem,
    ResponseItem,
    assistant_message,
    message_text,
    parse_response_item,
)
from .prompt import Prompt

__all__ = [
    "Completed",
    "ContentItem",
    "FunctionCallItem",
    "FunctionCallOutputItem",
    "InputItem",
    "MessageItem",
    "OutputItemDone",
    "Prompt",
    "ResponseEvent",
    "ResponseItem",
    "assistant_message",
    "message_text",
    "parse_response_item",
]
