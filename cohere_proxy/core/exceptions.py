"""Core exceptions for the proxy."""

from typing import Any, Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid.

    These are detected before any upstream call is made and are answered
    locally with ``status_code``.
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        code: str = "invalid_request",
        param: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.param = param


class MissingPromptError(InvalidRequestError):
    """Raised when the conversation holds no user turn to use as the prompt."""

    def __init__(self, message: str = "At least one user message is required") -> None:
        super().__init__(message, code="missing_prompt", param="messages")


class MissingCredentialError(InvalidRequestError):
    """Raised when the caller did not supply an upstream API key."""

    status_code = 401

    def __init__(self, message: str = "API key required") -> None:
        super().__init__(message, code="missing_api_key")


class UpstreamTransportError(ProxyError):
    """Network or HTTP failure while talking to the upstream provider."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StreamDecodeError(ProxyError):
    """A single upstream stream line could not be decoded."""

    def __init__(self, message: str, line: str = "") -> None:
        super().__init__(message)
        self.line = line
