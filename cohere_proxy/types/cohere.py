"""Types for the Cohere v1 chat API.

Reference: https://docs.cohere.com/v1/reference/chat
"""

from enum import Enum
from typing import Any
from typing_extensions import TypedDict


class Speaker(str, Enum):
    """Author of a chat history entry, as named on the Cohere wire."""

    USER = "USER"
    BOT = "CHATBOT"


class HistoryEntry(TypedDict):
    role: str
    message: str


class CohereChatRequest(TypedDict, total=False):
    """Body of ``POST /v1/chat``.

    Optional fields are omitted entirely when unset; the upstream treats an
    absent field differently from an explicit null for some of them.
    """
    message: str
    chat_history: list[HistoryEntry]
    preamble: str
    model: str
    max_tokens: int
    temperature: float
    stream: bool
    p: float
    stop_sequences: list[str]
    seed: int
    frequency_penalty: float
    presence_penalty: float


class BilledUnits(TypedDict, total=False):
    input_tokens: int
    output_tokens: int


class CohereMeta(TypedDict, total=False):
    billed_units: BilledUnits
    tokens: dict[str, Any]


class CohereChatResponse(TypedDict, total=False):
    """Non-streaming reply, also nested as ``response`` in stream-end events."""
    response_id: str
    generation_id: str
    text: str
    finish_reason: str
    meta: CohereMeta


class CohereStreamEvent(TypedDict, total=False):
    """One newline-delimited record of a streamed reply.

    ``event_type`` is "stream-start", "text-generation", "stream-end" or one
    of the search/citation events this proxy does not translate.
    """
    event_type: str
    is_finished: bool
    generation_id: str
    text: str
    finish_reason: str
    response: CohereChatResponse
