"""SSE (Server-Sent Events) framing and line buffering utilities."""

import json
from typing import Any, Optional


SSE_DONE = b"data: [DONE]\n\n"

# Prefixes of SSE lines that carry framing metadata rather than payload
SSE_METADATA_PREFIXES = ("event:", "id:", "retry:", ":")


def encode_sse_data(payload: Any) -> bytes:
    """Frame a JSON-serializable payload as a single ``data:`` event."""
    json_str = json.dumps(payload, ensure_ascii=False)
    return f"data: {json_str}\n\n".encode("utf-8")


def strip_data_prefix(line: str) -> Optional[str]:
    """
    Return the payload part of a stream line.

    Returns None for blank lines and SSE metadata lines. Lines without a
    ``data:`` prefix are returned as-is (newline-delimited JSON streams).
    """
    line = line.strip()
    if not line:
        return None
    if line.startswith("data:"):
        return line[5:].strip()
    if line.startswith(SSE_METADATA_PREFIXES):
        return None
    return line


class StreamBuffer:
    """Accumulates raw bytes and yields complete lines.

    Bytes are only decoded once a full line is available, so a multi-byte
    UTF-8 sequence may be split across any number of deliveries.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        if chunk:
            self._buffer.extend(chunk)
        lines: list[str] = []
        while True:
            newline_index = self._buffer.find(b"\n")
            if newline_index == -1:
                break
            raw_line = bytes(self._buffer[:newline_index])
            del self._buffer[: newline_index + 1]
            lines.append(raw_line.rstrip(b"\r").decode("utf-8", errors="replace"))
        return lines

    def flush(self) -> Optional[str]:
        """Return and clear any unterminated trailing line."""
        if not self._buffer:
            return None
        leftover = bytes(self._buffer).rstrip(b"\r")
        self._buffer.clear()
        return leftover.decode("utf-8", errors="replace")

    def clear(self) -> None:
        self._buffer.clear()
