"""Type definitions for the proxy."""

from .chat import (
    ChatCompletionChunk,
    ChatCompletionResponse,
    ChatMessage,
    ChatTurn,
    Choice,
    ChunkChoice,
    ContentPart,
    Delta,
    Usage,
)
from .cohere import (
    BilledUnits,
    CohereChatRequest,
    CohereChatResponse,
    CohereMeta,
    CohereStreamEvent,
    HistoryEntry,
    Speaker,
)

__all__ = [
    "BilledUnits",
    "ChatCompletionChunk",
    "ChatCompletionResponse",
    "ChatMessage",
    "ChatTurn",
    "Choice",
    "ChunkChoice",
    "CohereChatRequest",
    "CohereChatResponse",
    "CohereMeta",
    "CohereStreamEvent",
    "ContentPart",
    "Delta",
    "HistoryEntry",
    "Speaker",
    "Usage",
]
