"""OpenAI-compatible chat completions endpoint backed by the Cohere chat API."""

import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Mapping, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from ...auth import extract_api_key
from ...core import CohereClient, InvalidRequestError, UpstreamTransportError
from ...settings import ProxySettings
from ...translation import (
    CohereStreamTranslator,
    RequestOptions,
    adapt_cohere_stream,
    translate_document,
    translate_request,
)
from ...usage_metrics import USAGE_COUNTERS, RequestTracker

logger = logging.getLogger("cohere-proxy")

ALLOWED_METHODS = "POST, OPTIONS"
# Every method is routed here so unsupported ones get the JSON error contract
ROUTED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def cors_headers(settings: ProxySettings) -> dict[str, str]:
    allow_headers = ["Content-Type", "Authorization"]
    if settings.api_key_header.lower() != "authorization":
        allow_headers.append(settings.api_key_header)
    return {
        "Access-Control-Allow-Origin": settings.cors_allow_origin,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ", ".join(allow_headers),
        "Access-Control-Max-Age": "86400",
    }


def error_response(
    message: str,
    *,
    status_code: int,
    details: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        {"error": message, "details": details},
        status_code=status_code,
        headers=dict(headers or {}),
    )


def _upstream_error_response(
    exc: UpstreamTransportError, headers: Mapping[str, str]
) -> JSONResponse:
    status_code = exc.status_code if exc.status_code and exc.status_code >= 400 else 500
    details: dict[str, Any] = {"message": exc.message}
    if exc.status_code is not None:
        details["upstream_status"] = exc.status_code
    if exc.body is not None:
        details["upstream_body"] = exc.body
    return error_response(
        "Upstream request failed",
        status_code=status_code,
        details=details,
        headers=headers,
    )


async def chat_completions(request: Request) -> Response:
    """POST /v1/chat/completions - translate to Cohere and back."""
    settings: ProxySettings = request.app.state.settings
    client: CohereClient = request.app.state.cohere_client
    cors = cors_headers(settings)

    if request.method == "OPTIONS":
        return Response(status_code=200, headers=cors)
    if request.method != "POST":
        return error_response(
            "Method not allowed",
            status_code=405,
            details={"allowed": ALLOWED_METHODS},
            headers={**cors, "Allow": ALLOWED_METHODS},
        )

    # Generate request ID for log correlation
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"[{req_id}] Chat request from {client_host} to {request.url.path}")

    tracker = USAGE_COUNTERS.start_request()

    try:
        body = await request.body()
    except ClientDisconnect:
        elapsed = time.perf_counter() - start_time
        logger.warning(f"[{req_id}] ClientDisconnect while reading body after {elapsed:.3f}s")
        tracker.finish()
        return Response(status_code=499)  # Client Closed Request

    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning(f"[{req_id}] Invalid JSON payload: {exc}")
        tracker.finish()
        return error_response(
            "Invalid JSON payload", status_code=400, details=str(exc), headers=cors
        )

    if not isinstance(payload, Mapping):
        tracker.finish()
        return error_response(
            "Request body must be a JSON object", status_code=400, headers=cors
        )

    messages = payload.get("messages")
    if not isinstance(messages, list):
        logger.warning(f"[{req_id}] Rejected request: messages missing or not an array")
        tracker.finish()
        return error_response(
            "Messages array is required",
            status_code=400,
            details={"code": "invalid_request", "param": "messages"},
            headers=cors,
        )

    try:
        api_key = extract_api_key(request.headers, settings.api_key_header)
        options = RequestOptions.from_payload(payload)
        cohere_payload = translate_request(
            messages,
            options,
            default_model=settings.default_model,
            default_temperature=settings.default_temperature,
        )
    except InvalidRequestError as exc:
        logger.warning(f"[{req_id}] Rejected request ({exc.status_code}): {exc.message}")
        tracker.finish()
        return error_response(
            exc.message,
            status_code=exc.status_code,
            details={"code": exc.code, "param": exc.param},
            headers=cors,
        )

    model = cohere_payload["model"]
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"[{req_id}] Translated request: model={model}, "
            f"history={len(cohere_payload['chat_history'])}, "
            f"preamble={'preamble' in cohere_payload}, stream={options.stream}"
        )

    if options.stream:
        return await _stream_completion(
            req_id, client, cohere_payload, api_key, model, tracker, cors, start_time
        )

    try:
        upstream_body = await client.chat(cohere_payload, api_key)
    except UpstreamTransportError as exc:
        elapsed = time.perf_counter() - start_time
        logger.error(f"[{req_id}] Upstream error after {elapsed:.3f}s: {exc.message}")
        tracker.mark_upstream_error()
        tracker.finish()
        return _upstream_error_response(exc, cors)

    try:
        document = translate_document(upstream_body, model)
    except Exception as exc:
        logger.exception(f"[{req_id}] Failed to translate response: {exc}")
        tracker.finish()
        return error_response(
            "Failed to translate response", status_code=500, details=str(exc), headers=cors
        )

    tracker.record_usage(document["usage"])
    tracker.finish()
    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Completed non-streaming response for {model}, "
        f"finish_reason={document['choices'][0]['finish_reason']}, took {elapsed:.3f}s"
    )
    return JSONResponse(document, status_code=200, headers=cors)


async def _stream_completion(
    req_id: str,
    client: CohereClient,
    cohere_payload: Mapping[str, Any],
    api_key: str,
    model: str,
    tracker: RequestTracker,
    cors: Mapping[str, str],
    start_time: float,
) -> Response:
    tracker.mark_streaming()

    try:
        upstream = await client.open_stream(cohere_payload, api_key)
    except UpstreamTransportError as exc:
        logger.error(f"[{req_id}] Failed to open upstream stream: {exc.message}")
        tracker.mark_upstream_error()
        tracker.finish()
        return _upstream_error_response(exc, cors)

    translator = CohereStreamTranslator(model)
    frames = adapt_cohere_stream(upstream.aiter_bytes(), translator, on_close=upstream.aclose)

    # Hold back headers until the first frame is ready, so a failure at the
    # very start of the stream can still be answered with an error status.
    first_frame: Optional[bytes] = None
    try:
        first_frame = await frames.__anext__()
    except StopAsyncIteration:
        first_frame = None
    except UpstreamTransportError as exc:
        logger.error(f"[{req_id}] Upstream stream failed before any data: {exc.message}")
        tracker.mark_upstream_error()
        tracker.finish()
        return _upstream_error_response(exc, cors)

    elapsed = time.perf_counter() - start_time
    logger.info(f"[{req_id}] Starting streaming response for {model}, setup took {elapsed:.3f}s")

    async def cleanup() -> None:
        # Closing the frame generator closes the upstream stream
        await frames.aclose()
        if not tracker.finished:
            if translator.aborted:
                tracker.mark_upstream_error()
            tracker.record_usage(translator.usage)
            tracker.finish()

    async def body_iterator() -> AsyncIterator[bytes]:
        try:
            if first_frame is not None:
                yield first_frame
            async for frame in frames:
                yield frame
        finally:
            await cleanup()
            total = time.perf_counter() - start_time
            logger.info(
                f"[{req_id}] Stream finished for {model}: chunks={translator.chunks_emitted}, "
                f"finish_reason={translator.finish_reason}, "
                f"upstream_closed={upstream.closed}, took {total:.3f}s"
            )

    return StreamingResponse(
        body_iterator(),
        status_code=200,
        headers={**cors, "Cache-Control": "no-cache"},
        media_type="text/event-stream",
        # Runs even if the body was never iterated (client gone before start)
        background=BackgroundTask(cleanup),
    )
