"""OpenAI Chat Completions -> Cohere chat request translation.

Key mappings:
- system (and developer) messages -> ``preamble`` (joined with newlines, in order)
- last user message -> ``message`` (the current prompt)
- every other user/assistant message -> ``chat_history`` (USER / CHATBOT)
- max_tokens / temperature / top_p / stop / seed / penalties -> Cohere params

Reference:
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
- Cohere chat (v1): https://docs.cohere.com/v1/reference/chat
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from ..core.exceptions import InvalidRequestError, MissingPromptError
from ..types import CohereChatRequest, HistoryEntry, Speaker

logger = logging.getLogger("cohere-proxy")

DEFAULT_MODEL = "command-r-plus"
DEFAULT_TEMPERATURE = 0.3

_ROLE_TO_SPEAKER = {
    "user": Speaker.USER,
    "assistant": Speaker.BOT,
}
# Newer OpenAI clients send "developer" where older ones send "system"
_ROLE_ALIASES = {"developer": "system"}
_KNOWN_ROLES = {"system", "user", "assistant", *_ROLE_ALIASES}


@dataclass(frozen=True)
class RequestOptions:
    """Generation options taken from the inbound request body.

    ``None`` means the caller did not set the option; it is then either
    defaulted (model, temperature) or left out of the upstream request.
    """

    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    stream: bool = False
    top_p: Optional[float] = None
    stop: Optional[list[str]] = None
    seed: Optional[int] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RequestOptions":
        """Extract and validate options from an OpenAI request body.

        Raises:
            InvalidRequestError: If a present option has the wrong type.
        """
        model = payload.get("model")
        if model is not None and (not isinstance(model, str) or not model.strip()):
            raise InvalidRequestError(
                "model must be a non-empty string", code="invalid_parameter", param="model"
            )

        stream = payload.get("stream", False)
        if stream is None:
            stream = False
        if not isinstance(stream, bool):
            raise InvalidRequestError(
                "stream must be a boolean", code="invalid_parameter", param="stream"
            )

        return cls(
            model=model.strip() if model else None,
            max_tokens=_optional_int(payload, "max_tokens", minimum=0),
            temperature=_optional_number(payload, "temperature"),
            stream=stream,
            top_p=_optional_number(payload, "top_p"),
            stop=_optional_stop(payload.get("stop")),
            seed=_optional_int(payload, "seed"),
            frequency_penalty=_optional_number(payload, "frequency_penalty"),
            presence_penalty=_optional_number(payload, "presence_penalty"),
        )


def _optional_number(payload: Mapping[str, Any], name: str) -> Optional[float]:
    value = payload.get(name)
    if value is None:
        return None
    # bool is an int subclass but never a valid sampling value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequestError(
            f"{name} must be a number", code="invalid_parameter", param=name
        )
    return float(value)


def _optional_int(
    payload: Mapping[str, Any], name: str, minimum: Optional[int] = None
) -> Optional[int]:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(
            f"{name} must be an integer", code="invalid_parameter", param=name
        )
    if minimum is not None and value < minimum:
        raise InvalidRequestError(
            f"{name} must be >= {minimum}", code="invalid_parameter", param=name
        )
    return value


def _optional_stop(value: Any) -> Optional[list[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise InvalidRequestError(
        "stop must be a string or a list of strings", code="invalid_parameter", param="stop"
    )


def coerce_content(content: Any) -> str:
    """Flatten OpenAI message content to plain text.

    Content may be a string, None, or a list of content parts. Only text
    parts are kept; the upstream chat API has no slot for images.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, Mapping) and part.get("type") == "text":
                parts.append(str(part.get("text") or ""))
            else:
                part_type = part.get("type") if isinstance(part, Mapping) else type(part).__name__
                logger.debug(f"Dropping non-text content part during translation: {part_type}")
        return "".join(parts)
    return str(content)


def _validate_turns(turns: Sequence[Any]) -> list[tuple[str, str]]:
    validated: list[tuple[str, str]] = []
    for index, turn in enumerate(turns):
        if not isinstance(turn, Mapping):
            raise InvalidRequestError(
                f"messages[{index}] must be an object", param="messages"
            )
        role = turn.get("role")
        if not isinstance(role, str) or role not in _KNOWN_ROLES:
            raise InvalidRequestError(
                f"messages[{index}] has unsupported role: {role!r}",
                code="unsupported_role",
                param="messages",
            )
        validated.append((_ROLE_ALIASES.get(role, role), coerce_content(turn.get("content"))))
    return validated


def translate_request(
    turns: Sequence[Mapping[str, Any]],
    options: RequestOptions,
    *,
    default_model: str = DEFAULT_MODEL,
    default_temperature: float = DEFAULT_TEMPERATURE,
) -> CohereChatRequest:
    """Translate an OpenAI message list into a Cohere chat request.

    The current prompt is the content of the last ``user`` turn. System
    turns are merged into the preamble, and every other turn becomes a
    history entry in its original position.

    Args:
        turns: OpenAI ``messages`` array. Never mutated.
        options: Generation options from the same request.
        default_model: Model used when the caller did not name one.
        default_temperature: Temperature used when the caller did not set one.

    Returns:
        Cohere ``/v1/chat`` request body. Unset optional fields are omitted.

    Raises:
        MissingPromptError: If there is no user turn.
        InvalidRequestError: If a turn is malformed.
    """
    validated = _validate_turns(turns)

    prompt_index: Optional[int] = None
    for index in range(len(validated) - 1, -1, -1):
        if validated[index][0] == "user":
            prompt_index = index
            break
    if prompt_index is None:
        raise MissingPromptError()

    preamble = "\n".join(content for role, content in validated if role == "system")

    history: list[HistoryEntry] = []
    for index, (role, content) in enumerate(validated):
        if index == prompt_index or role == "system":
            continue
        history.append({"role": _ROLE_TO_SPEAKER[role].value, "message": content})

    request: CohereChatRequest = {
        "message": validated[prompt_index][1],
        "chat_history": history,
        "model": options.model or default_model,
        "temperature": (
            options.temperature if options.temperature is not None else default_temperature
        ),
        "stream": options.stream,
    }
    if preamble:
        request["preamble"] = preamble
    if options.max_tokens is not None:
        request["max_tokens"] = options.max_tokens
    if options.top_p is not None:
        request["p"] = options.top_p
    if options.stop:
        request["stop_sequences"] = options.stop
    if options.seed is not None:
        request["seed"] = options.seed
    if options.frequency_penalty is not None:
        request["frequency_penalty"] = options.frequency_penalty
    if options.presence_penalty is not None:
        request["presence_penalty"] = options.presence_penalty

    return request
