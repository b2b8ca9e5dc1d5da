"""cohere-chat-proxy - OpenAI Chat Completions facade for the Cohere chat API.

This package provides:
- Request translation: OpenAI messages -> Cohere message/chat_history/preamble
- Response translation: Cohere JSON replies -> OpenAI chat.completion
- Stream translation: Cohere event streams -> OpenAI SSE chunks + [DONE]
- A FastAPI app exposing the translation as one HTTP endpoint

Example:
    >>> from cohere_proxy.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=3000)
"""

__version__ = "1.0.0"

from .translation import (
    CohereStreamTranslator,
    RequestOptions,
    translate_document,
    translate_request,
)

__all__ = [
    "CohereStreamTranslator",
    "RequestOptions",
    "__version__",
    "translate_document",
    "translate_request",
]
