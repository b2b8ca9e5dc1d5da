"""Cohere chat response -> OpenAI Chat Completions translation."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Mapping, Optional

from ..types import ChatCompletionResponse, Usage

logger = logging.getLogger("cohere-proxy")

_FINISH_REASON_MAP = {
    "COMPLETE": "stop",
    "MAX_TOKENS": "length",
}

# Reported downstream as "stop"; the OpenAI schema has no matching value.
_ERROR_FINISH_REASONS = {"ERROR", "ERROR_TOXIC", "ERROR_LIMIT"}


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


def map_finish_reason(reason: Optional[str]) -> str:
    """Map a Cohere finish reason to an OpenAI finish reason.

    COMPLETE -> stop, MAX_TOKENS -> length; error reasons and anything
    unknown or absent map to stop. Matching is case-insensitive.
    """
    if not isinstance(reason, str) or not reason:
        return "stop"
    normalized = reason.strip().upper()
    if normalized in _FINISH_REASON_MAP:
        return _FINISH_REASON_MAP[normalized]
    if normalized in _ERROR_FINISH_REASONS:
        logger.warning(f"Upstream finished with {normalized}; reporting finish_reason=stop")
        return "stop"
    logger.debug(f"Unknown upstream finish reason {reason!r}; reporting finish_reason=stop")
    return "stop"


def _token_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def extract_billed_units(record: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """Return ``meta.billed_units`` from a response or stream-end record.

    Stream-end events nest the full response under ``response``; both
    locations are checked.
    """
    for candidate in (record, record.get("response")):
        if not isinstance(candidate, Mapping):
            continue
        meta = candidate.get("meta")
        if isinstance(meta, Mapping):
            billed = meta.get("billed_units")
            if isinstance(billed, Mapping):
                return billed
    return None


def usage_from_billed_units(billed: Optional[Mapping[str, Any]]) -> Usage:
    """Build an OpenAI usage record; missing counts are reported as zero."""
    if not billed:
        return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
    prompt_tokens = _token_count(billed.get("input_tokens"))
    completion_tokens = _token_count(billed.get("output_tokens"))
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def translate_document(
    upstream_body: Mapping[str, Any],
    requested_model: str,
) -> ChatCompletionResponse:
    """Translate a non-streaming Cohere chat reply to an OpenAI completion.

    Args:
        upstream_body: Parsed Cohere ``/v1/chat`` response.
        requested_model: Model name to echo back to the caller.

    Returns:
        OpenAI ``chat.completion`` document. Usage is always present; it is
        all zeros when the upstream reported no billing metadata.
    """
    completion_id = (
        upstream_body.get("generation_id")
        or upstream_body.get("response_id")
        or new_completion_id()
    )
    text = upstream_body.get("text")
    if not isinstance(text, str):
        text = ""

    return {
        "id": str(completion_id),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": requested_model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": map_finish_reason(upstream_body.get("finish_reason")),
            }
        ],
        "usage": usage_from_billed_units(extract_billed_units(upstream_body)),
    }
