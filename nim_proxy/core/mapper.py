"""Map a buffered NIM completion into an OpenAI chat completion object."""

from __future__ import annotations

import time
import uuid
from typing import Any, Mapping

from ..types import ChatCompletionResponse, Choice, Usage, extract_reasoning
from .settings import ProxySettings
from .sse import render_reasoning

USAGE_FIELDS = ("prompt_tokens", "completion_tokens", "total_tokens")


def _map_usage(usage: Any) -> Usage:
    counters = {name: 0 for name in USAGE_FIELDS}
    if isinstance(usage, Mapping):
        for name in USAGE_FIELDS:
            value = usage.get(name)
            if isinstance(value, int) and not isinstance(value, bool):
                counters[name] = value
    return counters  # type: ignore[return-value]


def _map_choice(position: int, choice: Any, show_reasoning: bool) -> Choice:
    if not isinstance(choice, Mapping):
        choice = {}
    message = choice.get("message")
    if not isinstance(message, Mapping):
        message = {}

    content = message.get("content")
    if not isinstance(content, str):
        content = None
    if show_reasoning:
        content = render_reasoning(extract_reasoning(message), content)

    role = message.get("role")
    index = choice.get("index")
    finish_reason = choice.get("finish_reason")
    return {
        "index": index if isinstance(index, int) else position,
        "message": {
            "role": role if isinstance(role, str) and role else "assistant",
            "content": content,
        },
        "finish_reason": finish_reason if isinstance(finish_reason, str) else None,
    }


def map_completion(
    body: Mapping[str, Any], public_model: str, settings: ProxySettings
) -> ChatCompletionResponse:
    """Convert one upstream response body into the OpenAI completion shape.

    The response is labelled with the model name the caller asked for, not
    the upstream model it was routed to.
    """
    choices = body.get("choices")
    if not isinstance(choices, list):
        choices = []
    return {
        "id": f"chatcmpl-{uuid.uuid4().hex}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": public_model,
        "choices": [
            _map_choice(position, choice, settings.show_reasoning)
            for position, choice in enumerate(choices)
        ],
        "usage": _map_usage(body.get("usage")),
    }
