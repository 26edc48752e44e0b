"""Uniform failure reporting.

Every failure that reaches the HTTP layer is rendered as::

    {"error": {"message": ..., "type": ..., "code": <http status>}}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .exceptions import ProxyError, UpstreamStatusError

logger = logging.getLogger("nim-proxy")

INTERNAL_ERROR_STATUS = 500
MAX_ERROR_TEXT = 2000


def extract_error_message(body: Optional[bytes]) -> Optional[str]:
    """Pull a human readable message out of an upstream error body."""
    if not body:
        return None
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return text[:MAX_ERROR_TEXT]

    if isinstance(parsed, dict):
        error_obj = parsed.get("error")
        if isinstance(error_obj, dict):
            message = error_obj.get("message")
            if isinstance(message, str) and message:
                return message
        elif isinstance(error_obj, str) and error_obj:
            return error_obj
        for key in ("message", "detail"):
            value = parsed.get(key)
            if isinstance(value, str) and value:
                return value
    return text[:MAX_ERROR_TEXT]


def failure_status(exc: BaseException) -> int:
    if isinstance(exc, ProxyError):
        return exc.status_code
    if isinstance(exc, StarletteHTTPException):
        return exc.status_code
    return INTERNAL_ERROR_STATUS


def failure_payload(exc: BaseException) -> dict[str, Any]:
    status = failure_status(exc)
    if isinstance(exc, UpstreamStatusError):
        message = extract_error_message(exc.body) or exc.message
        error_type = exc.error_type
    elif isinstance(exc, ProxyError):
        message = exc.message
        error_type = exc.error_type
    elif isinstance(exc, StarletteHTTPException):
        message = str(exc.detail)
        error_type = "invalid_request_error" if status < 500 else "api_error"
    else:
        message = str(exc) or "Internal server error"
        error_type = "api_error"
    return {
        "error": {
            "message": message,
            "type": error_type,
            "code": status,
        }
    }


def build_error_response(exc: BaseException) -> JSONResponse:
    return JSONResponse(status_code=failure_status(exc), content=failure_payload(exc))


def not_found_response(path: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={
            "error": {
                "message": f"Endpoint {path} not found",
                "type": "invalid_request_error",
                "code": 404,
            }
        },
    )


async def _proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    logger.error(
        "Request to %s failed with %s: %s",
        request.url.path,
        exc.__class__.__name__,
        exc.message,
    )
    return build_error_response(exc)


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code in {404, 405}:
        return not_found_response(request.url.path)
    return build_error_response(exc)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while serving %s", request.url.path)
    return build_error_response(exc)


def install_failure_handlers(app: FastAPI) -> None:
    """Register the uniform error shape for every failure path of the app."""
    app.add_exception_handler(ProxyError, _proxy_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
