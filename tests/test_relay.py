import asyncio
import unittest

from rai_chat.decoder import SseDecoder
from rai_chat.events import ChunkEvent, DoneEvent, ErrorEvent, StatusEvent
from rai_chat.relay import RelayChatTransport, ReplyRelay
from rai_chat.session import IDLE, ChatSession
from rai_chat.transport import TRANSPORT_ERROR_TEXT, ChatRequest


class _FakeProvider:
    def __init__(self, deltas: list[str], *, fail_after: int | None = None, reply: str = "ok"):
        self._deltas = deltas
        self._fail_after = fail_after
        self._reply = reply
        self.calls: list[dict] = []
        self.closed = False

    async def stream_text(self, model, max_tokens, temperature, system_prompt, messages):
        self.calls.append({"model": model, "system_prompt": system_prompt, "messages": messages})
        for index, delta in enumerate(self._deltas):
            if self._fail_after is not None and index >= self._fail_after:
                raise RuntimeError("provider exploded")
            yield delta

    async def create_message(self, model, max_tokens, temperature, system_prompt, messages):
        self.calls.append({"model": model, "system_prompt": system_prompt, "messages": messages})
        if self._fail_after is not None:
            raise RuntimeError("provider exploded")
        return self._reply

    async def aclose(self) -> None:
        self.closed = True


def _relay(provider: _FakeProvider, **kwargs) -> ReplyRelay:
    return ReplyRelay(provider, model="m", max_tokens=100, temperature=0.2, **kwargs)


def _request(**kwargs) -> ChatRequest:
    kwargs.setdefault("message", "How is my child doing?")
    kwargs.setdefault("user_role", "parent")
    kwargs.setdefault("user_email", "parent@example.com")
    return ChatRequest(**kwargs)


def _frames(relay: ReplyRelay, request: ChatRequest) -> list:
    async def scenario() -> str:
        return "".join([frame async for frame in relay.stream(request)])

    return SseDecoder().feed(asyncio.run(scenario()))


class ReplyRelayTests(unittest.TestCase):
    def test_stream_emits_status_chunks_done(self) -> None:
        provider = _FakeProvider(["Hel", "", "lo!"])
        events = _frames(_relay(provider), _request())
        self.assertEqual(
            [StatusEvent(ReplyRelay.THINKING_TEXT), ChunkEvent("Hel"), ChunkEvent("lo!"), DoneEvent()],
            events,
        )

    def test_provider_gets_history_and_role_prompt(self) -> None:
        provider = _FakeProvider(["x"])
        request = _request(
            child_id="child-1",
            chat_history=[{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
        )
        _frames(_relay(provider, child_names={"child-1": "Aarav"}), request)

        call = provider.calls[0]
        self.assertEqual("m", call["model"])
        self.assertIn("parent of Aarav", call["system_prompt"])
        self.assertEqual(
            [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
                {"role": "user", "content": "How is my child doing?"},
            ],
            call["messages"],
        )

    def test_provider_failure_becomes_single_error(self) -> None:
        provider = _FakeProvider(["Hel", "lo"], fail_after=1)
        events = _frames(_relay(provider), _request())
        self.assertEqual(
            [StatusEvent(ReplyRelay.THINKING_TEXT), ChunkEvent("Hel"), ErrorEvent(TRANSPORT_ERROR_TEXT)],
            events,
        )

    def test_validation_errors(self) -> None:
        provider = _FakeProvider(["x"])
        self.assertEqual([ErrorEvent("Messages required")], _frames(_relay(provider), _request(message=" ")))
        self.assertEqual([ErrorEvent("User context required")], _frames(_relay(provider), _request(user_email="")))
        self.assertEqual([], provider.calls)

    def test_complete(self) -> None:
        relay = _relay(_FakeProvider([], reply="Full answer."))
        self.assertEqual({"response": "Full answer."}, asyncio.run(relay.complete(_request())))
        self.assertEqual({"error": "Messages required"}, asyncio.run(relay.complete(_request(message=""))))

    def test_complete_failure(self) -> None:
        relay = _relay(_FakeProvider([], fail_after=0))
        self.assertEqual({"error": TRANSPORT_ERROR_TEXT}, asyncio.run(relay.complete(_request())))


class RelayChatTransportTests(unittest.TestCase):
    def test_session_over_relay(self) -> None:
        provider = _FakeProvider(["Two sessions ", "left."])
        session = ChatSession(
            transport=RelayChatTransport(_relay(provider)),
            user_role="coach",
            user_email="rucha@yestoryd.com",
        )

        async def scenario():
            transcript = await session.submit("How many sessions are left?")
            await session.close()
            return transcript

        transcript = asyncio.run(scenario())
        self.assertEqual(IDLE, session.state)
        self.assertEqual("Two sessions left.", transcript.messages[-1].content)
        self.assertFalse(transcript.messages[-1].is_streaming)
        self.assertTrue(provider.closed)


if __name__ == "__main__":
    unittest.main()
