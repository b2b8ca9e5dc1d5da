"""HTTP client for the upstream Cohere chat endpoint.

Each call owns its own ``httpx.AsyncClient`` so a request's upstream
connection is never shared with another request and can be torn down as
soon as that request is done.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Mapping, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import UpstreamTransportError

logger = logging.getLogger("cohere-proxy")

DEFAULT_UPSTREAM_BASE = "https://api.cohere.ai/v1"
CHAT_PATH = "chat"
DEFAULT_TIMEOUT = 60.0

# Per-host transports for in-process upstreams (tests, local fakes)
_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def _host_key(url_or_host: str) -> str:
    netloc = urlparse(url_or_host).netloc if "://" in url_or_host else url_or_host
    return netloc.strip().lower()


def register_upstream_transport(url_or_host: str, transport: httpx.AsyncBaseTransport) -> None:
    """Route upstream calls for a host (or the host of a URL) through ``transport``."""
    key = _host_key(url_or_host)
    if not key:
        raise ValueError("host is required")
    _TRANSPORTS[key] = transport
    logger.debug("Registered upstream transport for host '%s'", key)


def clear_upstream_transports() -> None:
    _TRANSPORTS.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    if not url:
        return None
    return _TRANSPORTS.get(_host_key(url))


def build_upstream_url(base: str, path: str = CHAT_PATH) -> str:
    """Join the upstream base URL and endpoint path."""
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def build_upstream_headers(api_key: str, stream: bool = False) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Accept": "text/event-stream" if stream else "application/json",
    }
    return headers


def mask_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy headers for logging with credentials masked."""
    masked: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in {"authorization", "x-api-key"}:
            masked[key] = f"{value[:10]}***" if len(value) > 10 else "***"
        else:
            masked[key] = value
    return masked


def format_httpx_error(exc: Exception, url: Optional[str] = None, timeout: Optional[float] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    try:
        request = getattr(exc, "request", None)
    except RuntimeError:
        # httpx raises when .request is read on an error built without one
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException) and timeout:
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def _decode_error_body(content: bytes) -> Any:
    if not content:
        return None
    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return content.decode("utf-8", errors="replace")


class UpstreamStream:
    """An open streaming response from the upstream.

    ``aclose`` releases both the response and its client and is safe to call
    more than once.
    """

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response, url: str) -> None:
        self._client = client
        self._response = response
        self.url = url
        self.closed = False
        self.bytes_received = 0

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Yield decoded body bytes as they arrive.

        Raises:
            UpstreamTransportError: If the connection fails mid-stream.
        """
        try:
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    self.bytes_received += len(chunk)
                    yield chunk
        except (httpx.HTTPError, httpx.StreamError) as exc:
            detail = format_httpx_error(exc, url=self.url)
            logger.error(f"Upstream stream from {self.url} failed: {detail}")
            raise UpstreamTransportError(f"Upstream stream failed: {detail}") from exc

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        logger.debug(f"Closing upstream stream for {self.url} ({self.bytes_received} bytes received)")
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class CohereClient:
    """Issues chat calls against the Cohere API with the caller's key."""

    def __init__(
        self,
        base_url: str = DEFAULT_UPSTREAM_BASE,
        timeout_seconds: Optional[float] = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @property
    def chat_url(self) -> str:
        return build_upstream_url(self.base_url, CHAT_PATH)

    def _build_client(self, stream: bool) -> httpx.AsyncClient:
        if self.timeout_seconds is None:
            timeout = httpx.Timeout(None)
        elif stream:
            # Streams may idle between events; only bound connection setup
            timeout = httpx.Timeout(
                connect=self.timeout_seconds,
                read=None,
                write=self.timeout_seconds,
                pool=self.timeout_seconds,
            )
        else:
            timeout = httpx.Timeout(self.timeout_seconds)
        return httpx.AsyncClient(
            timeout=timeout,
            transport=get_upstream_transport(self.chat_url),
        )

    async def chat(self, payload: Mapping[str, Any], api_key: str) -> dict[str, Any]:
        """Send a non-streaming chat request and return the parsed reply.

        Raises:
            UpstreamTransportError: On connection failure, an error status
                (``status_code`` mirrors it) or a non-JSON reply.
        """
        url = self.chat_url
        headers = build_upstream_headers(api_key, stream=False)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"POST {url} headers={mask_headers(headers)}")

        async with self._build_client(stream=False) as client:
            try:
                resp = await client.post(url, json=dict(payload), headers=headers)
            except httpx.HTTPError as exc:
                detail = format_httpx_error(exc, url=url, timeout=self.timeout_seconds)
                logger.error(f"Upstream request to {url} failed: {detail}")
                raise UpstreamTransportError(f"Upstream request failed: {detail}") from exc

        if resp.status_code >= 400:
            logger.warning(f"Upstream request to {url} returned error status {resp.status_code}")
            raise UpstreamTransportError(
                f"Upstream returned status {resp.status_code}",
                status_code=resp.status_code,
                body=_decode_error_body(resp.content),
            )

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise UpstreamTransportError(
                f"Upstream returned invalid JSON: {exc}",
                body=_decode_error_body(resp.content),
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamTransportError("Upstream returned a non-object JSON body", body=data)
        return data

    async def open_stream(self, payload: Mapping[str, Any], api_key: str) -> UpstreamStream:
        """Send a streaming chat request and return the open stream.

        The caller owns the returned stream and must ``aclose`` it.

        Raises:
            UpstreamTransportError: On connection failure or an error status;
                the connection is already released when this is raised.
        """
        url = self.chat_url
        headers = build_upstream_headers(api_key, stream=True)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"POST {url} (stream) headers={mask_headers(headers)}")

        client = self._build_client(stream=True)
        try:
            request = client.build_request("POST", url, headers=headers, json=dict(payload))
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            detail = format_httpx_error(exc, url=url, timeout=self.timeout_seconds)
            logger.error(f"Failed to open upstream stream to {url}: {detail}")
            raise UpstreamTransportError(f"Upstream request failed: {detail}") from exc
        except BaseException:
            await client.aclose()
            raise

        stream = UpstreamStream(client, resp, url)
        if resp.status_code >= 400:
            logger.warning(f"Upstream stream to {url} returned error status {resp.status_code}")
            try:
                content = await resp.aread()
            except httpx.HTTPError:
                content = b""
            finally:
                await stream.aclose()
            raise UpstreamTransportError(
                f"Upstream returned status {resp.status_code}",
                status_code=resp.status_code,
                body=_decode_error_body(content),
            )

        logger.info(f"Upstream stream to {url} opened, status {resp.status_code}")
        return stream
