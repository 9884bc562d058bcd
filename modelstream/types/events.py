"""Events yielded by a ResponseStream."""

from dataclasses import dataclass
from typing import Union

from .items import ResponseItem


@dataclass(frozen=True)
class OutputItemDone:
    """One finalized output unit (message, function call, ...)."""

    item: ResponseItem


@dataclass(frozen=True)
class Completed:
    """Terminal event carrying the backend-assigned turn identifier."""

    response_id: str


ResponseEvent = Union[OutputItemDone, Completed]
