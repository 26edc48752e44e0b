"""Build the NIM request payload from an inbound OpenAI-shaped request."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..types import ChatRequest, UpstreamRequest
from .model_table import ModelTable
from .settings import ProxySettings, TokenPolicy

logger = logging.getLogger("nim-proxy")


def clamp_tokens(requested: Optional[int], floor: int, ceiling: int) -> int:
    """Bound a requested token budget to [floor, ceiling].

    A missing request falls back to the floor.
    """
    value = floor if requested is None else requested
    return min(max(value, floor), ceiling)


def effective_max_tokens(requested: Optional[int], settings: ProxySettings) -> int:
    if settings.token_policy is TokenPolicy.OVERRIDE:
        return settings.override_tokens
    return clamp_tokens(requested, settings.min_tokens, settings.max_tokens)


def apply_system_directive(
    messages: list[dict[str, Any]], directive: Optional[str]
) -> list[dict[str, Any]]:
    """Prepend the directive unless a system message is already present."""
    if not directive:
        return list(messages)
    if any(message.get("role") == "system" for message in messages):
        return list(messages)
    return [{"role": "system", "content": directive}, *messages]


def normalize_request(
    request: ChatRequest, settings: ProxySettings, models: ModelTable
) -> UpstreamRequest:
    upstream_model = models.resolve(request.model)
    if upstream_model != request.model:
        logger.debug("Mapped model %s to %s", request.model, upstream_model)
    else:
        logger.debug("Forwarding unmapped model %s verbatim", request.model)

    temperature = request.temperature
    if temperature is None:
        temperature = settings.default_temperature

    return UpstreamRequest(
        model=upstream_model,
        messages=apply_system_directive(request.messages, settings.system_prompt),
        temperature=temperature,
        max_tokens=effective_max_tokens(request.max_tokens, settings),
        stream=request.stream,
        thinking=settings.enable_thinking,
    )
