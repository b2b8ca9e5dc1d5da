"""Tests for the Cohere stream -> OpenAI SSE state machine."""

import json

import pytest

from cohere_proxy.core.exceptions import UpstreamTransportError
from cohere_proxy.core.sse import SSE_DONE
from cohere_proxy.testing import build_stream_records, encode_stream_body
from cohere_proxy.translation import CohereStreamTranslator, StreamState, adapt_cohere_stream


async def _aiter(chunks: list[bytes]):
    for chunk in chunks:
        yield chunk


async def _failing_aiter(chunks: list[bytes], message: str = "connection reset"):
    for chunk in chunks:
        yield chunk
    raise UpstreamTransportError(message)


def _translator() -> CohereStreamTranslator:
    return CohereStreamTranslator("command-r-plus", completion_id="chatcmpl-test", created=1700000000)


def _parse_frames(frames: list[bytes]) -> list:
    events = []
    for frame in frames:
        assert frame.startswith(b"data: ")
        assert frame.endswith(b"\n\n")
        payload = frame[len(b"data: "):-2].decode("utf-8")
        events.append(payload if payload == "[DONE]" else json.loads(payload))
    return events


def _run(chunks: list[bytes]) -> list[bytes]:
    translator = _translator()
    frames: list[bytes] = []
    for chunk in chunks:
        frames.extend(translator.feed(chunk))
    frames.extend(translator.finish())
    return frames


HELLO_BODY = encode_stream_body(
    build_stream_records(
        ["Hel", "lo"],
        finish_reason="COMPLETE",
        billed_units={"input_tokens": 5, "output_tokens": 7},
        generation_id="gen-1",
    )
)


class TestStreamTranslation:
    def test_two_deltas_then_terminal(self):
        events = _parse_frames(_run([HELLO_BODY]))

        assert len(events) == 4
        assert events[0]["choices"][0]["delta"] == {"content": "Hel"}
        assert events[0]["choices"][0]["finish_reason"] is None
        assert events[1]["choices"][0]["delta"] == {"content": "lo"}
        assert events[2]["choices"][0]["delta"] == {}
        assert events[2]["choices"][0]["finish_reason"] == "stop"
        assert events[2]["usage"] == {
            "prompt_tokens": 5,
            "completion_tokens": 7,
            "total_tokens": 12,
        }
        assert events[3] == "[DONE]"

    def test_chunks_share_identity(self):
        events = _parse_frames(_run([HELLO_BODY]))[:-1]
        for event in events:
            assert event["id"] == "chatcmpl-test"
            assert event["object"] == "chat.completion.chunk"
            assert event["created"] == 1700000000
            assert event["model"] == "command-r-plus"

    def test_max_tokens_terminal(self):
        body = encode_stream_body(build_stream_records(["a"], finish_reason="MAX_TOKENS"))
        events = _parse_frames(_run([body]))
        assert events[-2]["choices"][0]["finish_reason"] == "length"

    def test_terminal_without_billing_has_no_usage(self):
        body = encode_stream_body(build_stream_records(["a"]))
        events = _parse_frames(_run([body]))
        assert "usage" not in events[-2]

    def test_stream_start_emits_nothing(self):
        translator = _translator()
        frames = translator.feed(b'{"is_finished":false,"event_type":"stream-start"}\n')
        assert frames == []
        assert translator.state is StreamState.BUFFERING

    def test_empty_text_delta_is_forwarded(self):
        translator = _translator()
        frames = translator.feed(b'{"is_finished":false,"event_type":"text-generation","text":""}\n')
        events = _parse_frames(frames)
        assert len(events) == 1
        assert events[0]["choices"][0]["delta"] == {"content": ""}

    def test_tool_call_text_is_not_content(self):
        translator = _translator()
        frames = translator.feed(
            b'{"is_finished":false,"event_type":"tool-calls-generation",'
            b'"text":"I will call the weather tool.","tool_calls":[]}\n'
            b'{"is_finished":false,"event_type":"citation-generation","text":"[1]"}\n'
        )
        assert frames == []
        assert translator.chunks_emitted == 0

    def test_untyped_text_record_is_content(self):
        translator = _translator()
        events = _parse_frames(translator.feed(b'{"text":"plain"}\n'))
        assert events[0]["choices"][0]["delta"] == {"content": "plain"}

    def test_data_prefixed_lines(self):
        body = encode_stream_body(build_stream_records(["Hel", "lo"]), sse_framing=True)
        events = _parse_frames(_run([body]))
        assert [e["choices"][0]["delta"] for e in events[:-1]] == [
            {"content": "Hel"},
            {"content": "lo"},
            {},
        ]
        assert events[-1] == "[DONE]"

    def test_crlf_line_endings(self):
        body = HELLO_BODY.replace(b"\n", b"\r\n")
        assert _run([body]) == _run([HELLO_BODY])


class TestChunkBoundaryInvariance:
    def test_every_single_split_point(self):
        expected = _run([HELLO_BODY])
        for offset in range(1, len(HELLO_BODY)):
            assert _run([HELLO_BODY[:offset], HELLO_BODY[offset:]]) == expected, offset

    def test_byte_at_a_time(self):
        expected = _run([HELLO_BODY])
        assert _run([HELLO_BODY[i:i + 1] for i in range(len(HELLO_BODY))]) == expected

    def test_split_inside_multibyte_character(self):
        body = encode_stream_body(build_stream_records(["héllo ✓"]))
        expected = _run([body])
        split_at = body.index("✓".encode("utf-8")) + 1
        assert _run([body[:split_at], body[split_at:]]) == expected
        events = _parse_frames(expected)
        assert events[0]["choices"][0]["delta"] == {"content": "héllo ✓"}


class TestTermination:
    def test_exactly_one_sentinel_after_terminal(self):
        frames = _run([HELLO_BODY])
        assert frames.count(SSE_DONE) == 1
        assert frames[-1] == SSE_DONE

    def test_upstream_end_without_terminal_emits_sentinel(self):
        translator = _translator()
        frames = translator.feed(b'{"event_type":"text-generation","text":"partial"}\n')
        frames.extend(translator.finish())
        events = _parse_frames(frames)
        assert events[0]["choices"][0]["delta"] == {"content": "partial"}
        assert events[-1] == "[DONE]"
        assert frames.count(SSE_DONE) == 1
        assert translator.closed

    def test_finish_twice_is_noop(self):
        translator = _translator()
        assert translator.finish() == [SSE_DONE]
        assert translator.finish() == []

    def test_bytes_after_close_are_ignored(self):
        translator = _translator()
        frames = translator.feed(HELLO_BODY + b'{"event_type":"text-generation","text":"late"}\n')
        assert translator.closed
        assert translator.feed(b'{"event_type":"text-generation","text":"later"}\n') == []
        events = _parse_frames(frames)
        assert all(
            e == "[DONE]" or e["choices"][0]["delta"].get("content") not in ("late", "later")
            for e in events
        )
        assert frames.count(SSE_DONE) == 1

    def test_unterminated_trailing_line_is_dispatched(self):
        body = HELLO_BODY.rstrip(b"\n")
        assert _run([body]) == _run([HELLO_BODY])

    def test_done_marker_line_is_ignored(self):
        translator = _translator()
        assert translator.feed(b"data: [DONE]\n") == []
        assert not translator.closed

    def test_abort_emits_single_sentinel(self):
        translator = _translator()
        translator.feed(b'{"event_type":"text-generation","text":"a"}\n')
        assert translator.abort("boom") == [SSE_DONE]
        assert translator.aborted
        assert translator.abort("again") == []
        assert translator.finish() == []

    def test_closed_state_has_no_transitions(self):
        translator = _translator()
        translator.finish()
        with pytest.raises(RuntimeError):
            translator._transition(StreamState.BUFFERING)


class TestMalformedInput:
    def test_malformed_line_is_skipped(self):
        records = build_stream_records(["Hel", "lo"])
        records.insert(2, b"{not json\n")
        events = _parse_frames(_run([encode_stream_body(records)]))
        assert [e["choices"][0]["delta"] for e in events[:-1]] == [
            {"content": "Hel"},
            {"content": "lo"},
            {},
        ]

    def test_decode_errors_counted(self):
        translator = _translator()
        translator.feed(b"{broken\n[1, 2]\n")
        assert translator.decode_errors == 2
        assert translator.chunks_emitted == 0

    def test_sse_metadata_lines_ignored(self):
        translator = _translator()
        assert translator.feed(b"event: message\nid: 1\n: keepalive\n\n") == []
        assert translator.decode_errors == 0


class TestAdaptCohereStream:
    @pytest.mark.asyncio
    async def test_yields_frames_and_closes_once(self):
        closed = []

        async def on_close():
            closed.append(True)

        translator = _translator()
        chunks = [HELLO_BODY[:10], HELLO_BODY[10:]]
        frames = [f async for f in adapt_cohere_stream(_aiter(chunks), translator, on_close=on_close)]

        assert frames == _run([HELLO_BODY])
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_stops_reading_after_terminal(self):
        consumed = []

        async def upstream():
            for chunk in (HELLO_BODY, b'{"event_type":"text-generation","text":"late"}\n'):
                consumed.append(chunk)
                yield chunk

        frames = [f async for f in adapt_cohere_stream(upstream(), _translator())]
        assert frames[-1] == SSE_DONE
        assert len(consumed) == 1

    @pytest.mark.asyncio
    async def test_missing_terminal_synthesizes_sentinel(self):
        translator = _translator()
        chunks = [b'{"event_type":"text-generation","text":"x"}\n']
        frames = [f async for f in adapt_cohere_stream(_aiter(chunks), translator)]
        assert frames[-1] == SSE_DONE
        assert frames.count(SSE_DONE) == 1

    @pytest.mark.asyncio
    async def test_error_before_output_is_raised(self):
        closed = []

        async def on_close():
            closed.append(True)

        with pytest.raises(UpstreamTransportError):
            async for _ in adapt_cohere_stream(
                _failing_aiter([]), _translator(), on_close=on_close
            ):
                pass
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_error_after_output_terminates_stream(self):
        translator = _translator()
        chunks = [b'{"event_type":"text-generation","text":"x"}\n']
        frames = [f async for f in adapt_cohere_stream(_failing_aiter(chunks), translator)]

        events = _parse_frames(frames)
        assert events[0]["choices"][0]["delta"] == {"content": "x"}
        assert events[-1] == "[DONE]"
        assert frames.count(SSE_DONE) == 1
        assert translator.aborted

    @pytest.mark.asyncio
    async def test_consumer_close_runs_on_close(self):
        closed = []

        async def on_close():
            closed.append(True)

        stream = adapt_cohere_stream(_aiter([HELLO_BODY]), _translator(), on_close=on_close)
        first = await stream.__anext__()
        assert first.startswith(b"data: ")
        await stream.aclose()
        assert closed == [True]
