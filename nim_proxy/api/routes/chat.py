"""OpenAI-compatible chat completions endpoint."""

import json
import logging
from typing import Any, Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ...core import InvalidRequestError, PayloadTooLargeError, ProxyRouter
from ...types import MESSAGE_ROLES, ChatRequest

logger = logging.getLogger("nim-proxy")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


async def _read_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing anything above ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(
            f"Request body of {declared} bytes exceeds the {limit} byte limit",
            limit=limit,
        )
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise PayloadTooLargeError(
                f"Request body exceeds the {limit} byte limit", limit=limit
            )
    return bytes(body)


def _parse_messages(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list) or not raw:
        raise InvalidRequestError("You must provide a non-empty messages array")
    messages = []
    for position, message in enumerate(raw):
        if not isinstance(message, Mapping):
            raise InvalidRequestError(f"messages[{position}] must be an object")
        role = message.get("role")
        if role not in MESSAGE_ROLES:
            raise InvalidRequestError(
                f"messages[{position}].role must be one of {', '.join(MESSAGE_ROLES)}"
            )
        if not isinstance(message.get("content"), str):
            raise InvalidRequestError(f"messages[{position}].content must be a string")
        messages.append(dict(message))
    return messages


def parse_chat_request(body: bytes) -> ChatRequest:
    """Validate a raw request body and build a ``ChatRequest``."""
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError(f"Invalid JSON payload: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Request body must be a JSON object")

    model = payload.get("model")
    if not isinstance(model, str) or not model:
        raise InvalidRequestError("You must provide a model parameter")

    temperature = payload.get("temperature")
    if temperature is not None and (
        isinstance(temperature, bool) or not isinstance(temperature, (int, float))
    ):
        raise InvalidRequestError("temperature must be a number")

    max_tokens = payload.get("max_tokens")
    if max_tokens is not None and (
        isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens < 1
    ):
        raise InvalidRequestError("max_tokens must be a positive integer")

    stream = payload.get("stream")
    if stream is not None and not isinstance(stream, bool):
        raise InvalidRequestError("stream must be a boolean")

    return ChatRequest(
        model=model,
        messages=_parse_messages(payload.get("messages")),
        temperature=None if temperature is None else float(temperature),
        max_tokens=max_tokens,
        stream=bool(stream),
    )


async def chat_completions(request: Request) -> Response:
    """Handle POST /v1/chat/completions.

    Streaming requests are answered with ``text/event-stream``; failures that
    happen before the stream is committed go through the regular error
    handlers with the upstream status preserved.
    """
    logger.info(f"Handling {request.method} request to {request.url.path}")
    router: ProxyRouter = request.app.state.router
    body = await _read_body(request, router.settings.max_body_bytes)
    chat_request = parse_chat_request(body)
    logger.info(
        f"Processing request for model {chat_request.model}, stream={chat_request.stream}"
    )

    if chat_request.stream:
        upstream = await router.open_stream(chat_request)
        return StreamingResponse(
            router.relay(upstream, disconnect_checker=request.is_disconnected),
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )

    completion = await router.complete(chat_request)
    return JSONResponse(completion)
