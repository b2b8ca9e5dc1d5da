"""Types for the OpenAI-compatible side of the proxy.

These follow the OpenAI Chat Completions API shape and describe what
callers send in and what the proxy writes back.
"""

from typing import Any
from typing_extensions import TypedDict


class ContentPart(TypedDict, total=False):
    """A content part for multi-part messages (OpenAI format).

    Only ``text`` parts carry anything the upstream can use.
    """
    type: str
    text: str | None
    image_url: dict[str, Any] | None


class ChatTurn(TypedDict, total=False):
    """One message of the inbound conversation.

    Attributes:
        role: One of "system", "user", "assistant".
        content: Message text, a list of content parts, or None.
    """
    role: str
    content: str | list[ContentPart] | None


class Usage(TypedDict):
    """Token accounting for a completion."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class Delta(TypedDict, total=False):
    """Incremental message content in a streaming chunk."""
    role: str
    content: str


class ChatMessage(TypedDict):
    role: str
    content: str


class ChunkChoice(TypedDict):
    index: int
    delta: Delta
    finish_reason: str | None


class Choice(TypedDict):
    index: int
    message: ChatMessage
    finish_reason: str


class ChatCompletionChunk(TypedDict, total=False):
    """A single streamed chunk (``object == "chat.completion.chunk"``)."""
    id: str
    object: str
    created: int
    model: str
    choices: list[ChunkChoice]
    usage: Usage


class ChatCompletionResponse(TypedDict):
    """A complete non-streaming response (``object == "chat.completion"``)."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage
