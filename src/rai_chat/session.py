from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from rai_chat.events import ChatEvent, DoneEvent, ErrorEvent, is_terminal
from rai_chat.transcript import (
    Transcript,
    apply_event,
    begin_turn,
    discard_turn,
    history_window,
    turn_for,
)
from rai_chat.transport import ChatRequest, ChatTransport

IDLE = "idle"
AWAITING_REPLY = "awaiting-reply"
FAILED = "failed"

UNEXPECTED_END_TEXT = "Response ended unexpectedly. Please try again."
TIMEOUT_TEXT = "The assistant took too long to respond. Please try again."


class ChatSessionError(Exception):
    pass


class TurnInProgressError(ChatSessionError):
    pass


class NoFailedTurnError(ChatSessionError):
    pass


class ChatSession:
    """One conversation with the assistant.

    Only one turn is in flight at a time. Every event received for the active
    turn is reduced into the transcript and ``on_update`` is called with the
    new transcript. A turn that ends in an error leaves the session ``failed``
    until ``retry()`` resubmits it or a new message is sent.
    """

    def __init__(
        self,
        *,
        transport: ChatTransport,
        user_role: str,
        user_email: str,
        child_id: str | None = None,
        history_window: int = 6,
        idle_timeout_seconds: float | None = 60.0,
        on_update: Callable[[Transcript], None] | None = None,
    ) -> None:
        self._transport = transport
        self._user_role = user_role
        self._user_email = user_email
        self._child_id = child_id
        self._history_window = history_window
        self._idle_timeout_seconds = idle_timeout_seconds if idle_timeout_seconds and idle_timeout_seconds > 0 else None
        self._on_update = on_update
        self._transcript = Transcript()
        self._state = IDLE
        self._active_reply_id: str | None = None
        self._failed_reply_id: str | None = None

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def state(self) -> str:
        return self._state

    @property
    def active_reply_id(self) -> str | None:
        return self._active_reply_id

    @property
    def child_id(self) -> str | None:
        return self._child_id

    @child_id.setter
    def child_id(self, value: str | None) -> None:
        self._child_id = value or None

    @property
    def failed_input(self) -> str | None:
        if self._failed_reply_id is None:
            return None
        turn = turn_for(self._transcript, self._failed_reply_id)
        return turn.user_content if turn else None

    async def submit(self, text: str) -> Transcript:
        content = text.strip()
        if not content:
            return self._transcript
        if self._state == AWAITING_REPLY:
            raise TurnInProgressError("A reply is still streaming; wait for it to finish.")

        history = history_window(self._transcript, self._history_window)
        self._failed_reply_id = None
        self._transcript, reply_id = begin_turn(self._transcript, content)
        self._active_reply_id = reply_id
        self._state = AWAITING_REPLY
        self._notify()
        logger.debug(f"Turn started: reply_id={reply_id}, history={len(history)}")

        request = ChatRequest(
            message=content,
            user_role=self._user_role,
            user_email=self._user_email,
            child_id=self._child_id,
            chat_history=history,
        )
        await self._run_turn(reply_id, request)
        return self._transcript

    async def retry(self) -> Transcript:
        if self._state != FAILED or self._failed_reply_id is None:
            raise NoFailedTurnError("There is no failed message to retry.")
        content = self.failed_input or ""
        logger.info(f"Retrying failed turn {self._failed_reply_id}")
        self._transcript = discard_turn(self._transcript, self._failed_reply_id)
        self._failed_reply_id = None
        self._state = IDLE
        return await self.submit(content)

    def receive(self, reply_id: str, event: ChatEvent) -> bool:
        """Apply an event if it belongs to the active turn. Returns whether it was applied."""
        if self._state != AWAITING_REPLY or reply_id != self._active_reply_id:
            logger.debug(f"Ignoring stray {type(event).__name__} for turn {reply_id} (state={self._state})")
            return False
        self._transcript = apply_event(self._transcript, reply_id, event)
        self._notify()
        if is_terminal(event):
            self._finish(reply_id, event)
        return True

    async def close(self) -> None:
        await self._transport.aclose()

    async def _run_turn(self, reply_id: str, request: ChatRequest) -> None:
        stream = self._transport.stream_reply(request)
        try:
            while self._active_reply_id == reply_id:
                try:
                    event = await asyncio.wait_for(anext(stream), self._idle_timeout_seconds)
                except StopAsyncIteration:
                    logger.warning(f"Reply stream for turn {reply_id} ended without a terminal event")
                    event = ErrorEvent(UNEXPECTED_END_TEXT)
                except TimeoutError:
                    logger.warning(
                        f"No reply event for turn {reply_id} within {self._idle_timeout_seconds}s"
                    )
                    event = ErrorEvent(TIMEOUT_TEXT)
                self.receive(reply_id, event)
        except asyncio.CancelledError:
            # The partial reply stays as it is; the session can take new input.
            logger.info(f"Turn {reply_id} cancelled")
            self._active_reply_id = None
            self._state = IDLE
            raise
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def _finish(self, reply_id: str, event: ChatEvent) -> None:
        self._active_reply_id = None
        if isinstance(event, DoneEvent):
            self._state = IDLE
            logger.debug(f"Turn {reply_id} completed")
            return
        self._state = FAILED
        self._failed_reply_id = reply_id
        message = event.message if isinstance(event, ErrorEvent) else ""
        logger.info(f"Turn {reply_id} failed: {message}")

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self._transcript)
