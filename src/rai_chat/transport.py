from __future__ import annotations

import contextlib
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger
from tenacity import AsyncRetrying

from rai_chat.decoder import decode_stream
from rai_chat.events import ChatEvent, DoneEvent, ErrorEvent, ResponseEvent
from rai_chat.retrying import default_retry_kwargs
from rai_chat.transcript import NO_REPLY_TEXT

TRANSPORT_ERROR_TEXT = "Sorry, there was an error. Please try again."

_CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


@dataclass
class ChatRequest:
    message: str
    user_role: str
    user_email: str
    child_id: str | None = None
    chat_history: list[dict[str, str]] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        history = [{"role": h["role"], "content": h["content"]} for h in self.chat_history]
        return {
            "message": self.message,
            "childId": self.child_id,
            "userRole": self.user_role,
            "userEmail": self.user_email,
            "chatHistory": history,
            "messages": history + [{"role": "user", "content": self.message}],
        }


@runtime_checkable
class ChatTransport(Protocol):
    def stream_reply(self, request: ChatRequest) -> AsyncIterator[ChatEvent]:
        """Issue one request and yield the reply's events in arrival order.

        Transport failures are yielded as a terminal ErrorEvent, never raised.
        """
        ...

    async def aclose(self) -> None: ...


def events_from_json(data: Any) -> list[ChatEvent]:
    """Map a non-streaming JSON reply onto the streamed event sequence."""
    if not isinstance(data, dict):
        return [ErrorEvent(TRANSPORT_ERROR_TEXT)]
    error = data.get("error")
    if error:
        return [ErrorEvent(str(error))]
    text = data.get("response")
    if not isinstance(text, str) or not text:
        text = NO_REPLY_TEXT
    return [ResponseEvent(text), DoneEvent()]


def _error_from_status(status_code: int, body: bytes) -> ErrorEvent:
    try:
        data = json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None
    if isinstance(data, dict) and data.get("error"):
        return ErrorEvent(str(data["error"]))
    return ErrorEvent(f"Chat request failed (HTTP {status_code})")


class HttpChatTransport:
    def __init__(
        self,
        endpoint_url: str,
        *,
        auth_token: str | None = None,
        timeout_seconds: float = 30.0,
        connect_attempts: int = 3,
        retry_min_wait: float = 0.5,
        retry_max_wait: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._endpoint_url = endpoint_url
        self._auth_token = auth_token
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._retry_kwargs = default_retry_kwargs(
            _CONNECT_ERRORS,
            attempts=connect_attempts,
            multiplier=retry_min_wait,
            min_wait=retry_min_wait,
            max_wait=retry_max_wait,
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream, application/json",
            "Cache-Control": "no-cache",
        }
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    async def _enter(self, stack: contextlib.AsyncExitStack, payload: dict) -> httpx.Response:
        return await stack.enter_async_context(
            self._client.stream("POST", self._endpoint_url, json=payload, headers=self._headers())
        )

    async def stream_reply(self, request: ChatRequest) -> AsyncIterator[ChatEvent]:
        payload = request.to_payload()
        logger.debug(
            f"Chat request: role={request.user_role}, child={request.child_id}, "
            f"history={len(request.chat_history)}"
        )
        try:
            async with contextlib.AsyncExitStack() as stack:
                response = await AsyncRetrying(**self._retry_kwargs)(self._enter, stack, payload)

                if not response.is_success:
                    body = await response.aread()
                    logger.warning(f"Chat request failed: HTTP {response.status_code}")
                    yield _error_from_status(response.status_code, body)
                    return

                content_type = response.headers.get("content-type", "")
                if "application/json" in content_type:
                    body = await response.aread()
                    try:
                        data = json.loads(body)
                    except (json.JSONDecodeError, UnicodeDecodeError):
                        logger.warning("Chat reply was not valid JSON")
                        data = None
                    for event in events_from_json(data):
                        yield event
                    return

                async for event in decode_stream(response.aiter_text()):
                    yield event
        except httpx.HTTPError as ex:
            logger.warning(f"Chat transport error: {type(ex).__name__}: {ex}")
            yield ErrorEvent(TRANSPORT_ERROR_TEXT)

    async def aclose(self) -> None:
        await self._client.aclose()
