"""Credential handling for the proxy."""

from .credentials import DEFAULT_HEADER_NAME, extract_api_key

__all__ = ["DEFAULT_HEADER_NAME", "extract_api_key"]
