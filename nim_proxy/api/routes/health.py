"""Liveness and health endpoints."""

from fastapi import Request
from fastapi.responses import PlainTextResponse

from ...core import ProxySettings

SERVICE_NAME = "OpenAI to NVIDIA NIM Proxy"


async def root() -> PlainTextResponse:
    return PlainTextResponse("NVIDIA NIM Proxy Server is Running!")


async def health(request: Request) -> dict:
    """Report the reasoning and token settings the proxy is running with."""
    settings: ProxySettings = request.app.state.settings
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "reasoning_display": settings.show_reasoning,
        "thinking_mode": settings.enable_thinking,
        "token_policy": settings.token_policy.value,
        "min_tokens": settings.min_tokens,
        "max_tokens": settings.max_tokens,
    }
