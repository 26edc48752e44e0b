"""Core module initialization."""

from .exceptions import (
    ConfigurationError,
    DecodeError,
    InvalidRequestError,
    PayloadTooLargeError,
    ProxyError,
    RetryableUpstreamError,
    StreamAbort,
    TransportError,
    UpstreamStatusError,
)
from .failures import build_error_response, install_failure_handlers
from .mapper import map_completion
from .model_table import ModelTable
from .normalizer import normalize_request
from .router import ProxyRouter
from .settings import ProxySettings, TokenPolicy, load_settings
from .sse import SSETranscoder, detect_sse_stream_error
from .transport import UpstreamClient, UpstreamStream, format_httpx_error

__all__ = [
    "ConfigurationError",
    "DecodeError",
    "InvalidRequestError",
    "ModelTable",
    "PayloadTooLargeError",
    "ProxyError",
    "ProxyRouter",
    "ProxySettings",
    "RetryableUpstreamError",
    "SSETranscoder",
    "StreamAbort",
    "TokenPolicy",
    "TransportError",
    "UpstreamClient",
    "UpstreamStatusError",
    "UpstreamStream",
    "build_error_response",
    "detect_sse_stream_error",
    "format_httpx_error",
    "install_failure_handlers",
    "load_settings",
    "map_completion",
    "normalize_request",
]
