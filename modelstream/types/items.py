"""Item shapes exchanged with the Responses API.

Only the ``type`` discriminator (and, where present, the identifier) drive
control flow in this package; every other field is carried through as-is.
"""

from typing import Any, Literal, Mapping, Optional, Union
from typing_extensions import TypedDict


# =============================================================================
# Content Types
# =============================================================================

class InputText(TypedDict):
    """Plain text supplied by the user."""
    type: Literal["input_text"]
    text: str


class OutputText(TypedDict):
    """Plain text produced by the model."""
    type: Literal["output_text"]
    text: str


ContentItem = Union[InputText, OutputText, dict[str, Any]]


# =============================================================================
# Items
# =============================================================================

class MessageItem(TypedDict, total=False):
    type: Literal["message"]
    role: str
    content: list[ContentItem]
    id: str
    status: str


class FunctionCallItem(TypedDict, total=False):
    type: Literal["function_call"]
    name: str
    arguments: str
    call_id: str
    id: str


class FunctionCallOutputItem(TypedDict, total=False):
    type: Literal["function_call_output"]
    call_id: str
    output: str


ResponseItem = Union[MessageItem, FunctionCallItem, FunctionCallOutputItem, dict[str, Any]]
"""Any JSON object with a string ``type`` discriminator."""

InputItem = ResponseItem


def parse_response_item(value: Any) -> Optional[ResponseItem]:
    """Return ``value`` as a ResponseItem, or None when it has the wrong shape."""
    if not isinstance(value, Mapping):
        return None
    kind = value.get("type")
    if not isinstance(kind, str) or not kind:
        return None
    if kind == "message":
        if not isinstance(value.get("role"), str):
            return None
        if not isinstance(value.get("content"), list):
            return None
    return dict(value)


def assistant_message(text: str) -> MessageItem:
    """Build an assistant message carrying a single output_text part."""
    return {
        "type": "message",
        "role": "assistant",
        "content": [{"type": "output_text", "text": text}],
    }


def message_text(item: Mapping[str, Any]) -> str:
    """Concatenate every text part of a message item."""
    parts: list[str] = []
    for content in item.get("content") or []:
        if isinstance(content, Mapping):
            text = content.get("text")
            if isinstance(text, str):
                parts.append(text)
    return "".join(parts)
