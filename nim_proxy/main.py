"""Main FastAPI application for the NIM proxy."""

import logging
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import chat_completions, health, list_models, root
from .core import (
    ModelTable,
    ProxyRouter,
    ProxySettings,
    UpstreamClient,
    install_failure_handlers,
    load_settings,
)
from .core.failures import not_found_response

logger = logging.getLogger("nim-proxy")

CATCH_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


async def not_found(request: Request) -> JSONResponse:
    return not_found_response(request.url.path)


def create_app(
    settings: Optional[ProxySettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the proxy application.

    Args:
        settings: Settings to run with; loaded from config and environment
            when omitted.
        transport: Optional httpx transport for the upstream client, used by
            tests to talk to an in-process upstream.

    Returns:
        The configured FastAPI application instance.
    """
    if settings is None:
        settings = load_settings()
    models = ModelTable(settings.model_mapping)
    client = UpstreamClient(settings, transport=transport)
    router = ProxyRouter(settings, client, models)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("NIM proxy starting up...")
        logger.info("Configured bind address %s:%s", settings.host, settings.port)
        if settings.host == "0.0.0.0":
            hostname = socket.gethostname()
            logger.info("Reachable on local network at http://%s:%s", hostname, settings.port)
        logger.info(f"Upstream endpoint: {settings.chat_completions_url}")
        logger.info(
            f"Reasoning display: {'on' if settings.show_reasoning else 'off'}, "
            f"thinking mode: {'on' if settings.enable_thinking else 'off'}"
        )
        logger.info(
            f"Token policy: {settings.token_policy.value} "
            f"(min={settings.min_tokens}, max={settings.max_tokens})"
        )
        logger.info(f"Serving {len(models)} mapped models: {list(models)}")
        try:
            yield
        finally:
            logger.info("Closing upstream connection pool")
            await client.aclose()

    app = FastAPI(title="NIM Proxy", lifespan=lifespan)
    app.state.settings = settings
    app.state.router = router
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_failure_handlers(app)

    app.get("/")(root)
    app.get("/health")(health)
    app.get("/v1/models")(list_models)
    app.post("/v1/chat/completions")(chat_completions)
    if settings.alias_unversioned_route:
        app.post("/chat/completions")(chat_completions)
    # Registered last so every known route matches first
    app.api_route("/{path:path}", methods=CATCH_ALL_METHODS)(not_found)

    return app


__all__ = ["create_app"]
