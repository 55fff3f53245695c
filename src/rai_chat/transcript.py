from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from loguru import logger

from rai_chat.events import (
    ChatEvent,
    ChildrenEvent,
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    ResponseEvent,
    StatusEvent,
)

USER = "user"
ASSISTANT = "assistant"

NO_REPLY_TEXT = "Sorry, I could not generate a response."


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_message_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    timestamp: datetime
    is_streaming: bool = False
    is_error: bool = False


@dataclass(frozen=True)
class Turn:
    user_message_id: str
    reply_id: str
    user_content: str
    closed: bool = False
    error: str | None = None
    children: Any = None


@dataclass(frozen=True)
class Transcript:
    """Ordered messages of one conversation plus per-turn bookkeeping.

    ``turns`` is keyed by the reserved reply id. ``status`` is the transient
    "thinking" text shown while a reply has no content yet.
    """

    messages: tuple[Message, ...] = ()
    turns: dict[str, Turn] = field(default_factory=dict)
    status: str | None = None


def begin_turn(
    transcript: Transcript,
    content: str,
    *,
    now: datetime | None = None,
) -> tuple[Transcript, str]:
    """Append the user message and reserve the id of the reply to come."""
    timestamp = now or utc_now()
    user_message = Message(id=new_message_id(), role=USER, content=content, timestamp=timestamp)
    reply_id = new_message_id()
    turn = Turn(user_message_id=user_message.id, reply_id=reply_id, user_content=content)
    turns = dict(transcript.turns)
    turns[reply_id] = turn
    updated = replace(
        transcript,
        messages=transcript.messages + (user_message,),
        turns=turns,
    )
    return updated, reply_id


def apply_event(
    transcript: Transcript,
    reply_id: str,
    event: ChatEvent,
    *,
    now: datetime | None = None,
) -> Transcript:
    """Apply one decoded event to the turn whose reply id is ``reply_id``.

    Events for unknown or already closed turns are ignored, so the function
    never raises on stray or repeated terminal events.
    """
    turn = transcript.turns.get(reply_id)
    if turn is None:
        logger.debug(f"Ignoring {type(event).__name__} for unknown turn {reply_id}")
        return transcript
    if turn.closed:
        logger.debug(f"Ignoring {type(event).__name__} for closed turn {reply_id}")
        return transcript

    reply = reply_for(transcript, reply_id)

    if isinstance(event, StatusEvent):
        return replace(transcript, status=event.message)

    if isinstance(event, ChunkEvent):
        if reply is None:
            created = _new_reply(reply_id, event.text, now, is_streaming=True)
            return _with_message(transcript, created, status=None)
        if not reply.is_streaming:
            return replace(transcript, status=None)
        return _with_message(transcript, replace(reply, content=reply.content + event.text), status=None)

    if isinstance(event, ResponseEvent):
        if reply is not None:
            # Chunks already carry the content for this turn.
            logger.debug(f"Ignoring full response for turn {reply_id} that is already streaming")
            return replace(transcript, status=None)
        created = _new_reply(reply_id, event.text, now, is_streaming=True)
        return _with_message(transcript, created, status=None)

    if isinstance(event, ChildrenEvent):
        return _with_turn(transcript, replace(turn, children=event.payload))

    if isinstance(event, DoneEvent):
        closed = _with_turn(transcript, replace(turn, closed=True), status=None)
        if reply is None:
            # A turn never resolves without a reply.
            logger.debug(f"Turn {reply_id} finished without content")
            return _with_message(closed, _new_reply(reply_id, NO_REPLY_TEXT, now))
        return _with_message(closed, replace(reply, is_streaming=False))

    if isinstance(event, ErrorEvent):
        closed = _with_turn(
            transcript,
            replace(turn, closed=True, error=event.message),
            status=None,
        )
        if reply is None:
            created = _new_reply(reply_id, event.message, now, is_error=True)
            return _with_message(closed, created)
        # Partial output survives the error.
        return _with_message(closed, replace(reply, is_streaming=False))

    logger.warning(f"Unhandled chat event type: {type(event).__name__}")
    return transcript


def apply_events(
    transcript: Transcript,
    reply_id: str,
    events: Iterable[ChatEvent],
    *,
    now: datetime | None = None,
) -> Transcript:
    for event in events:
        transcript = apply_event(transcript, reply_id, event, now=now)
    return transcript


def discard_turn(transcript: Transcript, reply_id: str) -> Transcript:
    """Remove a turn together with its user and reply messages."""
    turn = transcript.turns.get(reply_id)
    if turn is None:
        return transcript
    drop = {turn.user_message_id, turn.reply_id}
    turns = {key: value for key, value in transcript.turns.items() if key != reply_id}
    return replace(
        transcript,
        messages=tuple(m for m in transcript.messages if m.id not in drop),
        turns=turns,
        status=None,
    )


def reply_for(transcript: Transcript, reply_id: str) -> Message | None:
    for message in reversed(transcript.messages):
        if message.id == reply_id:
            return message
    return None


def turn_for(transcript: Transcript, reply_id: str) -> Turn | None:
    return transcript.turns.get(reply_id)


def history_window(transcript: Transcript, limit: int) -> list[dict[str, str]]:
    """Trailing role/content messages sent along with a new request.

    Only turns that completed without an error contribute, each as a whole
    user/assistant pair, so the window never opens on an assistant message.
    """
    if limit <= 0:
        return []
    completed = {
        key
        for turn in transcript.turns.values()
        if turn.closed and turn.error is None
        for key in (turn.user_message_id, turn.reply_id)
    }
    settled = [
        {"role": m.role, "content": m.content}
        for m in transcript.messages
        if m.id in completed and not m.is_error
    ]
    window = settled[-limit:]
    if window and window[0]["role"] == ASSISTANT:
        window = window[1:]
    return window


def _new_reply(
    reply_id: str,
    content: str,
    now: datetime | None,
    *,
    is_streaming: bool = False,
    is_error: bool = False,
) -> Message:
    return Message(
        id=reply_id,
        role=ASSISTANT,
        content=content,
        timestamp=now or utc_now(),
        is_streaming=is_streaming,
        is_error=is_error,
    )


def _with_message(transcript: Transcript, message: Message, **changes: Any) -> Transcript:
    messages = list(transcript.messages)
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].id == message.id:
            messages[index] = message
            break
    else:
        messages.append(message)
    return replace(transcript, messages=tuple(messages), **changes)


def _with_turn(transcript: Transcript, turn: Turn, **changes: Any) -> Transcript:
    turns = dict(transcript.turns)
    turns[turn.reply_id] = turn
    return replace(transcript, turns=turns, **changes)
