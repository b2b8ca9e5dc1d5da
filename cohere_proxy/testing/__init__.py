"""Test helpers: an in-process fake of the Cohere chat API."""

from .fake_upstream import (
    FakeCohereUpstream,
    UpstreamResponse,
    build_chat_response,
    build_stream_records,
    encode_stream_body,
)

__all__ = [
    "FakeCohereUpstream",
    "UpstreamResponse",
    "build_chat_response",
    "build_stream_records",
    "encode_stream_body",
]
