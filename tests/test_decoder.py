import asyncio
import unittest

from rai_chat.decoder import SseDecoder, decode_stream, encode_event, parse_record
from rai_chat.events import (
    ChildrenEvent,
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    ResponseEvent,
    StatusEvent,
)


async def _aiter(pieces: list[str]):
    for piece in pieces:
        yield piece


def _collect(pieces: list[str]) -> list:
    async def scenario() -> list:
        return [event async for event in decode_stream(_aiter(pieces))]

    return asyncio.run(scenario())


class ParseRecordTests(unittest.TestCase):
    def test_kind_from_json_type_field(self) -> None:
        self.assertEqual(ChunkEvent("Hel"), parse_record(None, '{"type": "chunk", "content": "Hel"}'))

    def test_kind_from_event_field_wins(self) -> None:
        event = parse_record("status", '{"type": "chunk", "message": "Looking up sessions"}')
        self.assertEqual(StatusEvent("Looking up sessions"), event)

    def test_payload_aliases(self) -> None:
        self.assertEqual(ChunkEvent("a"), parse_record("chunk", '{"text": "a"}'))
        self.assertEqual(ResponseEvent("b"), parse_record("response", '{"content": "b"}'))
        self.assertEqual(ErrorEvent("c"), parse_record("error", '{"message": "c"}'))
        self.assertEqual(ChildrenEvent([1]), parse_record("children", '{"data": [1]}'))

    def test_bare_json_string_payload(self) -> None:
        self.assertEqual(ChunkEvent("Hel"), parse_record("chunk", '"Hel"'))

    def test_done_sentinel(self) -> None:
        self.assertEqual(DoneEvent(), parse_record(None, "[DONE]"))

    def test_done_without_data(self) -> None:
        self.assertEqual(DoneEvent(), parse_record("done", ""))

    def test_error_without_text_still_terminates(self) -> None:
        event = parse_record(None, '{"type": "error"}')
        self.assertIsInstance(event, ErrorEvent)
        self.assertTrue(event.message)

    def test_malformed_records_are_skipped(self) -> None:
        self.assertIsNone(parse_record(None, "{not json"))
        self.assertIsNone(parse_record(None, '{"content": "no kind"}'))
        self.assertIsNone(parse_record("mystery", '{"content": "x"}'))
        self.assertIsNone(parse_record("chunk", '{"content": 42}'))
        self.assertIsNone(parse_record("children", "{}"))


class SseDecoderTests(unittest.TestCase):
    def test_record_split_across_feeds(self) -> None:
        decoder = SseDecoder()
        self.assertEqual([], decoder.feed('data: {"type": "chu'))
        self.assertEqual([], decoder.feed('nk", "content": "Hel"}\n'))
        self.assertEqual([ChunkEvent("Hel")], decoder.feed("\n"))

    def test_crlf_line_endings(self) -> None:
        decoder = SseDecoder()
        events = decoder.feed('event: chunk\r\ndata: {"content": "x"}\r\n\r\n')
        self.assertEqual([ChunkEvent("x")], events)

    def test_multiline_data_is_joined(self) -> None:
        decoder = SseDecoder()
        events = decoder.feed('event: response\ndata: {"response":\ndata: "joined"}\n\n')
        self.assertEqual([ResponseEvent("joined")], events)

    def test_comments_and_unknown_fields_are_ignored(self) -> None:
        decoder = SseDecoder()
        events = decoder.feed(': keep-alive\nid: 7\nretry: 1000\ndata: {"type": "status", "message": "hi"}\n\n')
        self.assertEqual([StatusEvent("hi")], events)

    def test_blank_lines_without_record_emit_nothing(self) -> None:
        decoder = SseDecoder()
        self.assertEqual([], decoder.feed("\n\n\n"))

    def test_malformed_record_does_not_abort_stream(self) -> None:
        decoder = SseDecoder()
        events = decoder.feed(
            'data: {"type": "chunk", "content": "a"}\n\n'
            "data: {broken\n\n"
            'data: {"type": "chunk", "content": "b"}\n\n'
        )
        self.assertEqual([ChunkEvent("a"), ChunkEvent("b")], events)

    def test_nothing_after_terminal_event(self) -> None:
        decoder = SseDecoder()
        events = decoder.feed(
            'data: {"type": "done"}\n\n'
            'data: {"type": "chunk", "content": "late"}\n\n'
        )
        self.assertEqual([DoneEvent()], events)
        self.assertTrue(decoder.finished)
        self.assertEqual([], decoder.feed('data: {"type": "error", "error": "x"}\n\n'))
        self.assertEqual([], decoder.flush())

    def test_flush_completes_trailing_record(self) -> None:
        decoder = SseDecoder()
        self.assertEqual([], decoder.feed('data: {"type": "chunk", "content": "tail"}'))
        self.assertEqual([ChunkEvent("tail")], decoder.flush())


class DecodeStreamTests(unittest.TestCase):
    def test_events_keep_source_order(self) -> None:
        events = _collect([
            'data: {"type": "status", "message": "thinking"}\n\n',
            'data: {"type": "chunk", "content": "Hel"}\n\ndata: {"type": "status", "message": "still"}\n\n',
            'data: {"type": "chunk", "content": "lo!"}\n\n',
            'data: {"type": "children", "children": [{"id": "c1"}]}\n\n',
            "data: [DONE]\n\n",
        ])
        self.assertEqual(
            [
                StatusEvent("thinking"),
                ChunkEvent("Hel"),
                StatusEvent("still"),
                ChunkEvent("lo!"),
                ChildrenEvent([{"id": "c1"}]),
                DoneEvent(),
            ],
            events,
        )

    def test_byte_at_a_time_delivery(self) -> None:
        frame = 'event: chunk\ndata: {"content": "Hi"}\n\nevent: done\ndata: {}\n\n'
        self.assertEqual([ChunkEvent("Hi"), DoneEvent()], _collect(list(frame)))

    def test_stops_reading_after_terminal(self) -> None:
        consumed: list[str] = []

        async def source():
            for piece in ['data: {"type": "error", "error": "boom"}\n\n', "data: [DONE]\n\n"]:
                consumed.append(piece)
                yield piece

        async def scenario() -> list:
            return [event async for event in decode_stream(source())]

        self.assertEqual([ErrorEvent("boom")], asyncio.run(scenario()))
        self.assertEqual(1, len(consumed))

    def test_stream_without_terminal_just_ends(self) -> None:
        self.assertEqual([ChunkEvent("part")], _collect(['data: {"type": "chunk", "content": "part"}\n\n']))


class EncodeEventTests(unittest.TestCase):
    def test_encoded_frames_decode_to_the_same_events(self) -> None:
        events = [
            StatusEvent("Thinking..."),
            ChunkEvent("line one\nline two"),
            ChildrenEvent({"children": ["Aarav"]}),
            ResponseEvent("ünïcode ✓"),
            ErrorEvent("nope"),
        ]
        decoder = SseDecoder()
        decoded = decoder.feed("".join(encode_event(e) for e in events))
        self.assertEqual(events, decoded)

    def test_frame_layout(self) -> None:
        self.assertEqual('event: done\ndata: {"type": "done"}\n\n', encode_event(DoneEvent()))


if __name__ == "__main__":
    unittest.main()
