"""OpenAI <-> Cohere chat translation helpers.

Provides translation of OpenAI Chat Completions requests into Cohere chat
requests, and of Cohere replies (JSON or streamed) back into the OpenAI
format.
"""

from .request import RequestOptions, coerce_content, translate_request
from .response import map_finish_reason, translate_document, usage_from_billed_units
from .stream import (
    CohereStreamTranslator,
    StreamState,
    adapt_cohere_stream,
    decode_record,
)

__all__ = [
    "CohereStreamTranslator",
    "RequestOptions",
    "StreamState",
    "adapt_cohere_stream",
    "coerce_content",
    "decode_record",
    "map_finish_reason",
    "translate_document",
    "translate_request",
    "usage_from_billed_units",
]
