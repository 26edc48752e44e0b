"""Type definitions for the proxy."""

from .chat import (
    MESSAGE_ROLES,
    REASONING_FIELDS,
    ChatCompletionResponse,
    ChatMessage,
    ChatRequest,
    Choice,
    DeltaEvent,
    ModelCard,
    UpstreamRequest,
    Usage,
    extract_reasoning,
)

__all__ = [
    "MESSAGE_ROLES",
    "REASONING_FIELDS",
    "ChatCompletionResponse",
    "ChatMessage",
    "ChatRequest",
    "Choice",
    "DeltaEvent",
    "ModelCard",
    "UpstreamRequest",
    "Usage",
    "extract_reasoning",
]
