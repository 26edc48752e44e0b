"""Core exceptions for the proxy."""

from typing import Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    status_code = 500
    error_type = "api_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    status_code = 400
    error_type = "invalid_request_error"


class RetryableUpstreamError(ProxyError):
    """Signals that another upstream attempt may be made."""
    pass


class TransportError(RetryableUpstreamError):
    """Connection, reset or timeout failure talking to the upstream."""

    error_type = "upstream_connection_error"


class UpstreamStatusError(RetryableUpstreamError):
    """The upstream answered with a non-2xx status."""

    error_type = "upstream_error"

    def __init__(
        self,
        message: str,
        status_code: int,
        body: Optional[bytes] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PayloadTooLargeError(ProxyError):
    """A request or response body exceeded the configured ceiling."""

    status_code = 413
    error_type = "invalid_request_error"

    def __init__(self, message: str, limit: int) -> None:
        super().__init__(message)
        self.limit = limit


class DecodeError(ProxyError):
    """Upstream data could not be decoded as JSON."""

    error_type = "upstream_decode_error"


class StreamAbort(ProxyError):
    """The upstream stream errored or closed before the terminal marker."""

    error_type = "upstream_stream_error"
