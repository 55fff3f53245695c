from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class StatusEvent:
    message: str


@dataclass(frozen=True)
class ChunkEvent:
    text: str


@dataclass(frozen=True)
class ResponseEvent:
    text: str


@dataclass(frozen=True)
class ChildrenEvent:
    payload: Any


@dataclass(frozen=True)
class DoneEvent:
    pass


@dataclass(frozen=True)
class ErrorEvent:
    message: str


ChatEvent = Union[StatusEvent, ChunkEvent, ResponseEvent, ChildrenEvent, DoneEvent, ErrorEvent]

# Wire names, shared by the decoder and the relay.
EVENT_KINDS: dict[type, str] = {
    StatusEvent: "status",
    ChunkEvent: "chunk",
    ResponseEvent: "response",
    ChildrenEvent: "children",
    DoneEvent: "done",
    ErrorEvent: "error",
}


def is_terminal(event: ChatEvent) -> bool:
    return isinstance(event, (DoneEvent, ErrorEvent))
