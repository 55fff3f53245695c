from __future__ import annotations

from collections.abc import AsyncIterator

from loguru import logger

from rai_chat.decoder import decode_stream, encode_event
from rai_chat.events import ChatEvent, ChunkEvent, DoneEvent, ErrorEvent, StatusEvent
from rai_chat.provider import LLMProvider
from rai_chat.system_prompt import build_system_prompt
from rai_chat.transport import TRANSPORT_ERROR_TEXT, ChatRequest


class ReplyRelay:
    """Produces the streamed reply framing from an LLM provider.

    This is the server half of the chat protocol: one status frame, one chunk
    frame per provider text delta, then exactly one done or error frame.
    """

    THINKING_TEXT = "Thinking..."

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        child_names: dict[str, str] | None = None,
    ):
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._child_names = dict(child_names or {})

    def _validate(self, request: ChatRequest) -> str | None:
        if not request.message or not request.message.strip():
            return "Messages required"
        if not request.user_email or not request.user_role:
            return "User context required"
        return None

    def _system_prompt(self, request: ChatRequest) -> str:
        child_name = self._child_names.get(request.child_id) if request.child_id else None
        return build_system_prompt(request.user_role, child_name)

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        problem = self._validate(request)
        if problem:
            logger.warning(f"Rejected chat request: {problem}")
            yield encode_event(ErrorEvent(problem))
            return

        yield encode_event(StatusEvent(self.THINKING_TEXT))
        chunk_count = 0
        try:
            async for delta in self._provider.stream_text(
                self._model,
                self._max_tokens,
                self._temperature,
                self._system_prompt(request),
                request.to_payload()["messages"],
            ):
                if not delta:
                    continue
                chunk_count += 1
                yield encode_event(ChunkEvent(delta))
        except Exception as ex:
            logger.error(f"Chat relay failed after {chunk_count} chunk(s): {ex}")
            yield encode_event(ErrorEvent(TRANSPORT_ERROR_TEXT))
            return

        logger.debug(f"Chat relay finished: chunks={chunk_count}")
        yield encode_event(DoneEvent())

    async def complete(self, request: ChatRequest) -> dict:
        """Non-streaming reply in the JSON shape of the chat endpoint."""
        problem = self._validate(request)
        if problem:
            return {"error": problem}
        try:
            text = await self._provider.create_message(
                self._model,
                self._max_tokens,
                self._temperature,
                self._system_prompt(request),
                request.to_payload()["messages"],
            )
        except Exception as ex:
            logger.error(f"Chat relay failed: {ex}")
            return {"error": TRANSPORT_ERROR_TEXT}
        return {"response": text}

    async def aclose(self) -> None:
        await self._provider.aclose()


class RelayChatTransport:
    """In-process transport: relay frames go straight through the decoder."""

    def __init__(self, relay: ReplyRelay):
        self._relay = relay

    async def stream_reply(self, request: ChatRequest) -> AsyncIterator[ChatEvent]:
        async for event in decode_stream(self._relay.stream(request)):
            yield event

    async def aclose(self) -> None:
        await self._relay.aclose()
