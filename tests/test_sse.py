"""Tests for the SSE module."""

from cohere_proxy.core.sse import SSE_DONE, StreamBuffer, encode_sse_data, strip_data_prefix


class TestEncodeSseData:
    def test_frames_json_payload(self):
        assert encode_sse_data({"a": 1}) == b'data: {"a": 1}\n\n'

    def test_keeps_non_ascii(self):
        assert "é".encode("utf-8") in encode_sse_data({"text": "é"})

    def test_done_sentinel(self):
        assert SSE_DONE == b"data: [DONE]\n\n"


class TestStripDataPrefix:
    def test_blank_line(self):
        assert strip_data_prefix("") is None
        assert strip_data_prefix("   ") is None

    def test_data_prefix_removed(self):
        assert strip_data_prefix('data: {"x": 1}') == '{"x": 1}'
        assert strip_data_prefix('data:{"x": 1}') == '{"x": 1}'

    def test_metadata_lines(self):
        for line in ("event: message", "id: 42", "retry: 1000", ": keepalive"):
            assert strip_data_prefix(line) is None

    def test_bare_json_line(self):
        assert strip_data_prefix('{"x": 1}') == '{"x": 1}'


class TestStreamBuffer:
    def test_splits_complete_lines(self):
        buffer = StreamBuffer()
        assert buffer.feed(b"one\ntwo\nthr") == ["one", "two"]
        assert len(buffer) == 3
        assert buffer.feed(b"ee\n") == ["three"]
        assert len(buffer) == 0

    def test_line_spanning_deliveries(self):
        buffer = StreamBuffer()
        assert buffer.feed(b"ab") == []
        assert buffer.feed(b"c") == []
        assert buffer.feed(b"\n") == ["abc"]

    def test_strips_carriage_return(self):
        buffer = StreamBuffer()
        assert buffer.feed(b"line\r\n") == ["line"]

    def test_multibyte_character_split(self):
        encoded = "✓\n".encode("utf-8")
        buffer = StreamBuffer()
        assert buffer.feed(encoded[:1]) == []
        assert buffer.feed(encoded[1:2]) == []
        assert buffer.feed(encoded[2:]) == ["✓"]

    def test_flush_returns_leftover(self):
        buffer = StreamBuffer()
        buffer.feed(b"done\npartial")
        assert buffer.flush() == "partial"
        assert buffer.flush() is None

    def test_clear(self):
        buffer = StreamBuffer()
        buffer.feed(b"pending")
        buffer.clear()
        assert len(buffer) == 0
        assert buffer.flush() is None
