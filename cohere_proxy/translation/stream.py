"""Stream translator for converting Cohere chat event streams to OpenAI SSE.

Cohere streams one JSON record per line (optionally ``data:`` framed):

    {"is_finished":false,"event_type":"stream-start","generation_id":"..."}
    {"is_finished":false,"event_type":"text-generation","text":"Hel"}
    {"is_finished":false,"event_type":"text-generation","text":"lo"}
    {"is_finished":true,"event_type":"stream-end","finish_reason":"COMPLETE",
     "response":{"text":"Hello","meta":{"billed_units":{...}}}}

OpenAI Chat Completion chunks:

    data: {"object":"chat.completion.chunk","choices":[{"delta":{"content":"Hel"},...}]}
    data: {"object":"chat.completion.chunk","choices":[{"delta":{"content":"lo"},...}]}
    data: {"object":"chat.completion.chunk","choices":[{"delta":{},"finish_reason":"stop"}]}
    data: [DONE]
"""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from ..core.exceptions import StreamDecodeError, UpstreamTransportError
from ..core.sse import SSE_DONE, StreamBuffer, encode_sse_data, strip_data_prefix
from ..types import ChatCompletionChunk, Delta, Usage
from .response import (
    extract_billed_units,
    map_finish_reason,
    new_completion_id,
    usage_from_billed_units,
)

logger = logging.getLogger("cohere-proxy")


class StreamState(str, Enum):
    BUFFERING = "buffering"
    DISPATCHING = "dispatching"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS: dict[StreamState, frozenset[StreamState]] = {
    StreamState.BUFFERING: frozenset({StreamState.DISPATCHING, StreamState.CLOSED}),
    StreamState.DISPATCHING: frozenset({StreamState.BUFFERING, StreamState.CLOSED}),
    StreamState.CLOSED: frozenset(),
}

# Only these carry assistant text; tool-call and citation events also have
# a "text" field. Untyped records are treated as plain deltas.
_TEXT_EVENT_TYPES = ("text-generation", None)


def decode_record(line: str) -> Optional[dict[str, Any]]:
    """Decode one stream line into a record.

    Returns None for lines that carry no record (blank lines, SSE metadata,
    ``[DONE]`` markers).

    Raises:
        StreamDecodeError: If the line is not a JSON object.
    """
    payload = strip_data_prefix(line)
    if payload is None or payload == "[DONE]":
        return None
    try:
        record = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise StreamDecodeError(f"invalid JSON in stream line: {exc}", line=payload) from exc
    if not isinstance(record, dict):
        raise StreamDecodeError(
            f"stream record is {type(record).__name__}, expected object", line=payload
        )
    return record


def is_terminal_record(record: dict[str, Any]) -> bool:
    return record.get("is_finished") is True or record.get("event_type") == "stream-end"


def _record_finish_reason(record: dict[str, Any]) -> Optional[str]:
    reason = record.get("finish_reason")
    if reason is None:
        response = record.get("response")
        if isinstance(response, dict):
            reason = response.get("finish_reason")
    return reason if isinstance(reason, str) else None


class CohereStreamTranslator:
    """Converts a Cohere chat byte stream to OpenAI SSE chunks.

    The translator is a state machine independent of any transport:

    - BUFFERING: bytes are accumulated until a line terminator appears
    - DISPATCHING: one complete line is classified and translated
    - CLOSED: a terminal record was translated, the upstream ended, or the
      stream was aborted; further input is ignored

    Every method returns the SSE frames (bytes) to write downstream. At most
    one ``[DONE]`` sentinel is ever returned.
    """

    def __init__(
        self,
        model: str,
        completion_id: Optional[str] = None,
        created: Optional[int] = None,
    ):
        """Initialize the stream translator.

        Args:
            model: Model name echoed in every chunk
            completion_id: Chunk id (e.g. "chatcmpl-xxx"); generated if omitted
            created: Unix timestamp shared by all chunks; now if omitted
        """
        self.model = model
        self.completion_id = completion_id or new_completion_id()
        self.created = created if created is not None else int(time.time())

        self.state = StreamState.BUFFERING
        self._buffer = StreamBuffer()

        self.chunks_emitted = 0
        self.sentinel_emitted = False
        self.decode_errors = 0
        self.aborted = False
        self.finish_reason: Optional[str] = None
        self.usage: Optional[Usage] = None

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED

    @property
    def has_output(self) -> bool:
        """True once any frame has been handed out for writing."""
        return self.chunks_emitted > 0 or self.sentinel_emitted

    def _transition(self, new_state: StreamState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal stream state transition: {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def feed(self, chunk: bytes) -> list[bytes]:
        """Consume one delivery of upstream bytes.

        Args:
            chunk: Raw bytes; may hold many lines or part of one

        Returns:
            SSE frames ready to write, in record order
        """
        if self.closed:
            if chunk:
                logger.debug(f"StreamTranslator: ignoring {len(chunk)} bytes after close")
            return []

        frames: list[bytes] = []
        for line in self._buffer.feed(chunk):
            frames.extend(self._dispatch(line))
            if self.closed:
                self._buffer.clear()
                break
        return frames

    def finish(self) -> list[bytes]:
        """Handle the end of the upstream stream.

        Any unterminated trailing line is dispatched first. If no terminal
        record was seen, the sentinel is emitted so the caller never waits
        for a terminator the upstream failed to send.
        """
        if self.closed:
            return []

        frames: list[bytes] = []
        leftover = self._buffer.flush()
        if leftover is not None:
            frames.extend(self._dispatch(leftover))
        if not self.closed:
            logger.info(
                f"StreamTranslator: upstream ended without a terminal record "
                f"after {self.chunks_emitted} chunks; closing stream"
            )
            frames.append(self._emit_done())
            self._transition(StreamState.CLOSED)
        return frames

    def abort(self, reason: str) -> list[bytes]:
        """Close the stream after an upstream failure.

        Headers and part of the body are already committed at this point,
        so the stream is only terminated; no error body is written.
        """
        if self.closed:
            return []
        logger.warning(f"StreamTranslator: aborting stream: {reason}")
        self.aborted = True
        self._buffer.clear()
        frames = [self._emit_done()]
        self._transition(StreamState.CLOSED)
        return frames

    def _dispatch(self, line: str) -> list[bytes]:
        self._transition(StreamState.DISPATCHING)
        try:
            record = decode_record(line)
        except StreamDecodeError as exc:
            self.decode_errors += 1
            logger.warning(f"StreamTranslator: skipping malformed line: {exc.line[:100]!r} ({exc})")
            record = None

        frames = self._translate_record(record) if record is not None else []
        if not self.closed:
            self._transition(StreamState.BUFFERING)
        return frames

    def _translate_record(self, record: dict[str, Any]) -> list[bytes]:
        if is_terminal_record(record):
            self.finish_reason = map_finish_reason(_record_finish_reason(record))
            billed = extract_billed_units(record)
            if billed is not None:
                self.usage = usage_from_billed_units(billed)
            frames = [self._emit_chunk({}, self.finish_reason, self.usage), self._emit_done()]
            self._transition(StreamState.CLOSED)
            return frames

        event_type = record.get("event_type")
        text = record.get("text")
        # An empty string is a valid no-op delta and is still forwarded
        if isinstance(text, str) and event_type in _TEXT_EVENT_TYPES:
            return [self._emit_chunk({"content": text}, None)]

        logger.debug(f"StreamTranslator: no output for event_type={event_type!r}")
        return []

    def _emit_chunk(
        self,
        delta: Delta,
        finish_reason: Optional[str],
        usage: Optional[Usage] = None,
    ) -> bytes:
        chunk: ChatCompletionChunk = {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
        if usage is not None:
            chunk["usage"] = usage
        self.chunks_emitted += 1
        return encode_sse_data(chunk)

    def _emit_done(self) -> bytes:
        if self.sentinel_emitted:
            raise RuntimeError("Stream sentinel already emitted")
        self.sentinel_emitted = True
        return SSE_DONE


async def adapt_cohere_stream(
    upstream: AsyncIterator[bytes],
    translator: CohereStreamTranslator,
    on_close: Optional[Callable[[], Awaitable[None]]] = None,
) -> AsyncIterator[bytes]:
    """Drive a translator over an upstream byte stream.

    Upstream reading stops as soon as the translator closes. ``on_close`` is
    awaited exactly once when the generator finishes, fails or is closed by
    the consumer, so the upstream connection never outlives the downstream.

    Raises:
        UpstreamTransportError: If the upstream fails before any frame was
            produced; later failures only terminate the stream.
    """
    try:
        try:
            async for chunk in upstream:
                for frame in translator.feed(chunk):
                    yield frame
                if translator.closed:
                    break
        except UpstreamTransportError as exc:
            if not translator.has_output:
                raise
            for frame in translator.abort(exc.message):
                yield frame
        for frame in translator.finish():
            yield frame
    finally:
        if on_close is not None:
            await on_close()
