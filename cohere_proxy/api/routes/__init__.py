"""API routes for the proxy."""

from .chat import ROUTED_METHODS, chat_completions
from .usage import router as usage_router

__all__ = [
    "ROUTED_METHODS",
    "chat_completions",
    "usage_router",
]
