"""Testing utilities for in-process proxy simulations."""

from .assertions import (
    assert_error_shape,
    assert_no_reasoning_fields,
    assert_openai_chat_valid,
    parse_sse_payloads,
    reassemble_stream_content,
)
from .fake_upstream import FakeUpstream, UpstreamResponse
from .proxy_harness import UPSTREAM_BASE, ProxyHarness, make_settings
from .response_builders import (
    build_chat_request,
    build_nim_chat_response,
    build_nim_stream_chunks,
    encode_sse,
)

__all__ = [
    # Core simulation classes
    "FakeUpstream",
    "UpstreamResponse",
    "ProxyHarness",
    "UPSTREAM_BASE",
    "make_settings",
    # Response builders
    "build_chat_request",
    "build_nim_chat_response",
    "build_nim_stream_chunks",
    "encode_sse",
    # Assertions
    "assert_error_shape",
    "assert_no_reasoning_fields",
    "assert_openai_chat_valid",
    "parse_sse_payloads",
    "reassemble_stream_content",
]
