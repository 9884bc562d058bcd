"""Prompt supplied by the orchestration loop."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .items import InputItem


@dataclass(frozen=True)
class Prompt:
    """Everything needed to issue one model turn.

    ``tools`` holds the already serialized tool schema (Responses API form)
    and ``prev_id`` links the turn to a previous response when set.
    """

    instructions: str = ""
    input: list[InputItem] = field(default_factory=list)
    tools: list[dict[str, Any]] = field(default_factory=list)
    prev_id: Optional[str] = None
    store: bool = False

    @classmethod
    def from_user_text(cls, text: str, instructions: str = "") -> "Prompt":
        return cls(
            instructions=instructions,
            input=[
                {
                    "type": "message",
                    "role": "user",
                    "content": [{"type": "input_text", "text": text}],
                }
            ],
        )
