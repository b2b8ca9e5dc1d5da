"""Caller credential extraction.

The proxy holds no upstream secret of its own: the key the caller presents
is passed through to the upstream as a bearer token.
"""

from __future__ import annotations

import logging
from typing import Mapping

from ..core.exceptions import MissingCredentialError

logger = logging.getLogger("cohere-proxy")

DEFAULT_HEADER_NAME = "x-api-key"


def extract_api_key(
    headers: Mapping[str, str],
    header_name: str = DEFAULT_HEADER_NAME,
) -> str:
    """Return the caller's API key.

    ``Authorization: Bearer <token>`` is checked first, then the dedicated
    API-key header. Header lookup is case-insensitive when ``headers`` is a
    Starlette ``Headers`` object.

    Raises:
        MissingCredentialError: If neither header carries a key.
    """
    auth_header = headers.get("authorization") or headers.get("Authorization") or ""
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
        if token:
            return token

    provided_key = (headers.get(header_name) or headers.get(header_name.lower()) or "").strip()
    if provided_key:
        return provided_key

    logger.warning("Request rejected: missing API key")
    raise MissingCredentialError(
        f"API key required: send 'Authorization: Bearer <key>' or '{header_name}: <key>'"
    )
