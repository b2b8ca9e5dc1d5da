"""Main FastAPI application for the Cohere chat proxy."""

import logging
from typing import Optional

from fastapi import FastAPI

from .api.routes import ROUTED_METHODS, chat_completions, usage_router
from .core import CohereClient
from .logging import setup_logging
from .settings import ProxySettings, load_settings

logger = logging.getLogger("cohere-proxy")

CHAT_PATHS = ("/v1/chat/completions", "/api/openai-to-cohere")


def create_app(settings: Optional[ProxySettings] = None) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        settings: Resolved settings; loaded from the config file and
            environment when omitted.

    Returns:
        The configured FastAPI application instance.
    """
    if settings is None:
        settings = load_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="Cohere Chat Proxy")
    app.state.settings = settings
    app.state.cohere_client = CohereClient(
        base_url=settings.upstream_base_url,
        timeout_seconds=settings.timeout_seconds,
    )

    for path in CHAT_PATHS:
        app.api_route(path, methods=ROUTED_METHODS)(chat_completions)
    app.include_router(usage_router)

    logger.info(
        "Cohere proxy app created: upstream=%s, default_model=%s, routes=%s",
        app.state.cohere_client.chat_url,
        settings.default_model,
        ", ".join(CHAT_PATHS),
    )
    return app


app = create_app()

__all__ = ["app", "create_app", "CHAT_PATHS"]
