"""Core module initialization."""

from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    MissingCredentialError,
    MissingPromptError,
    ProxyError,
    StreamDecodeError,
    UpstreamTransportError,
)
from .sse import SSE_DONE, StreamBuffer, encode_sse_data
from .upstream import (
    CohereClient,
    UpstreamStream,
    clear_upstream_transports,
    format_httpx_error,
    register_upstream_transport,
)

__all__ = [
    "CohereClient",
    "ConfigurationError",
    "InvalidRequestError",
    "MissingCredentialError",
    "MissingPromptError",
    "ProxyError",
    "SSE_DONE",
    "StreamBuffer",
    "StreamDecodeError",
    "UpstreamStream",
    "UpstreamTransportError",
    "clear_upstream_transports",
    "encode_sse_data",
    "format_httpx_error",
    "register_upstream_transport",
]
