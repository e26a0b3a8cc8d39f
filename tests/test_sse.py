"""Tests for SSE encoding and decoding."""

from falproxy.core.sse import SSE_DONE, SSEDecoder, SSEEvent, format_sse_data, parse_sse_json


class TestSSEDecoder:
    """Tests for incremental SSE decoding."""

    def test_splits_events_across_chunks(self):
        decoder = SSEDecoder()

        assert decoder.feed(b'data: {"output": "He') == []
        events = decoder.feed(b'llo"}\n\ndata: {"output": "Hello!"}\n\n')

        assert [parse_sse_json(event) for event in events] == [
            {"output": "Hello"},
            {"output": "Hello!"},
        ]

    def test_handles_crlf_line_endings(self):
        events = SSEDecoder().feed(b'event: message\r\ndata: {"a": 1}\r\n\r\n')

        assert len(events) == 1
        assert events[0].other_lines == ["event: message"]
        assert parse_sse_json(events[0]) == {"a": 1}

    def test_multibyte_character_split_across_chunks(self):
        encoded = 'data: {"output": "café"}\n\n'.encode("utf-8")
        split = encoded.index(b"\xc3") + 1
        decoder = SSEDecoder()

        events = decoder.feed(encoded[:split]) + decoder.feed(encoded[split:])

        assert parse_sse_json(events[0]) == {"output": "café"}

    def test_flush_returns_unterminated_event(self):
        decoder = SSEDecoder()
        decoder.feed(b'data: {"output": "tail"}')

        events = decoder.flush()

        assert parse_sse_json(events[0]) == {"output": "tail"}
        assert decoder.flush() == []

    def test_multiline_data(self):
        events = SSEDecoder().feed(b"data: line one\ndata: line two\n\n")

        assert events[0].data == "line one\nline two"


class TestParseSSEJson:
    def test_skips_done_and_non_json(self):
        assert parse_sse_json(SSEEvent(data="[DONE]")) is None
        assert parse_sse_json(SSEEvent(data="not json")) is None
        assert parse_sse_json(SSEEvent(data="[1, 2]")) is None
        assert parse_sse_json(SSEEvent(data=None)) is None


class TestEncoding:
    def test_format_sse_data(self):
        assert format_sse_data({"a": "é"}) == 'data: {"a": "é"}\n\n'.encode("utf-8")

    def test_done_frame(self):
        assert SSE_DONE == b"data: [DONE]\n\n"

    def test_event_encode_round_trips_through_decoder(self):
        raw = SSEEvent(data='{"x": 1}', other_lines=["event: update"]).encode()

        events = SSEDecoder().feed(raw)

        assert events[0].other_lines == ["event: update"]
        assert parse_sse_json(events[0]) == {"x": 1}
