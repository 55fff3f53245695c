from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from loguru import logger

from rai_chat.events import (
    EVENT_KINDS,
    ChatEvent,
    ChildrenEvent,
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    ResponseEvent,
    StatusEvent,
    is_terminal,
)

_DONE_SENTINEL = "[DONE]"
_DEFAULT_ERROR_TEXT = "Something went wrong."

# Accepted payload keys per event kind, first match wins.
_PAYLOAD_FIELDS: dict[str, tuple[str, ...]] = {
    "status": ("message",),
    "chunk": ("content", "text"),
    "response": ("response", "content"),
    "children": ("children", "data"),
    "error": ("error", "message"),
}

_TEXT_EVENTS: dict[str, type] = {
    "status": StatusEvent,
    "chunk": ChunkEvent,
    "response": ResponseEvent,
    "error": ErrorEvent,
}


class SseDecoder:
    """Incremental Server-Sent Events decoder for chat replies.

    Text may be fed in arbitrary pieces; an event is returned as soon as the
    blank line closing its record has been seen. Records that cannot be
    understood are skipped. Once a terminal event (done/error) has been
    produced the decoder ignores all further input.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._event_name: str | None = None
        self._data_lines: list[str] = []
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, text: str) -> list[ChatEvent]:
        if self._finished:
            return []
        self._buffer += text
        events: list[ChatEvent] = []
        while not self._finished:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            self._collect(self._process_line(line.removesuffix("\r")), events)
        return events

    def flush(self) -> list[ChatEvent]:
        """Complete a trailing record that was not followed by a blank line."""
        if self._finished:
            return []
        events: list[ChatEvent] = []
        if self._buffer:
            line, self._buffer = self._buffer, ""
            self._collect(self._process_line(line.removesuffix("\r")), events)
        if not self._finished:
            self._collect(self._dispatch(), events)
        return events

    def _collect(self, event: ChatEvent | None, events: list[ChatEvent]) -> None:
        if event is None:
            return
        events.append(event)
        if is_terminal(event):
            self._finished = True
            self._buffer = ""

    def _process_line(self, line: str) -> ChatEvent | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_name = value.strip() or None
        elif field == "data":
            self._data_lines.append(value)
        # id / retry and unknown fields carry nothing for chat replies
        return None

    def _dispatch(self) -> ChatEvent | None:
        if not self._data_lines and self._event_name is None:
            return None
        name = self._event_name
        data = "\n".join(self._data_lines)
        self._event_name = None
        self._data_lines = []
        return parse_record(name, data)


def parse_record(name: str | None, data: str) -> ChatEvent | None:
    """Turn one SSE record into an event, or None if it is malformed."""
    stripped = data.strip()
    if stripped == _DONE_SENTINEL:
        return DoneEvent()

    payload: Any = None
    if stripped:
        try:
            payload = json.loads(stripped)
        except json.JSONDecodeError:
            logger.debug(f"Skipping non-JSON stream record: {stripped[:200]!r}")
            return None

    kind = name
    if not kind and isinstance(payload, dict):
        kind = payload.get("type")
    if not isinstance(kind, str) or not kind:
        logger.debug(f"Skipping stream record without an event kind: {stripped[:200]!r}")
        return None

    kind = kind.strip().lower()
    if kind == "done":
        return DoneEvent()

    fields = _PAYLOAD_FIELDS.get(kind)
    if fields is None:
        logger.debug(f"Skipping stream record of unknown kind {kind!r}")
        return None

    value = _extract(payload, fields)

    if kind == "children":
        if value is None:
            logger.debug("Skipping children record without a payload")
            return None
        return ChildrenEvent(value)

    if kind == "error" and not isinstance(value, str):
        return ErrorEvent(_DEFAULT_ERROR_TEXT)

    if not isinstance(value, str):
        logger.debug(f"Skipping {kind} record without text: {stripped[:200]!r}")
        return None
    return _TEXT_EVENTS[kind](value)


def _extract(payload: Any, fields: tuple[str, ...]) -> Any:
    if isinstance(payload, dict):
        for field in fields:
            if field in payload:
                return payload[field]
        return None
    # A bare JSON value is the payload itself (e.g. `event: chunk` / `data: "Hel"`).
    return payload


async def decode_stream(chunks: AsyncIterable[str]) -> AsyncIterator[ChatEvent]:
    """Yield events from an incrementally arriving text stream.

    Stops after the first terminal event without draining the rest.
    """
    decoder = SseDecoder()
    async for text in chunks:
        for event in decoder.feed(text):
            yield event
        if decoder.finished:
            return
    for event in decoder.flush():
        yield event


def encode_event(event: ChatEvent) -> str:
    """Frame an event the way the decoder reads it."""
    kind = EVENT_KINDS[type(event)]
    payload: dict[str, Any] = {"type": kind}
    if isinstance(event, StatusEvent):
        payload["message"] = event.message
    elif isinstance(event, ChunkEvent):
        payload["content"] = event.text
    elif isinstance(event, ResponseEvent):
        payload["response"] = event.text
    elif isinstance(event, ChildrenEvent):
        payload["children"] = event.payload
    elif isinstance(event, ErrorEvent):
        payload["error"] = event.message
    return f"event: {kind}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"
