"""Types for the chat payloads exchanged with clients and the NIM upstream.

Two families live here:
- Wire types (``TypedDict``): the OpenAI-compatible JSON shapes this proxy
  returns to clients.
- Request/stream types (dataclasses): the parsed inbound request, the
  payload sent upstream, and the per-choice delta of a streamed chunk.

Upstream JSON is loosely typed. Parsing helpers treat missing or mistyped
fields as absent instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from typing_extensions import TypedDict


# Upstream field names that carry "thinking" text, in lookup order.
REASONING_FIELDS = ("reasoning_content", "reasoning")

MESSAGE_ROLES = ("system", "user", "assistant")


# =============================================================================
# OpenAI-Compatible Wire Types
# =============================================================================


class ChatMessage(TypedDict, total=False):
    """A message in a chat conversation (OpenAI format).

    Attributes:
        role: One of "system", "user" or "assistant".
        content: Text content of the message. May be None on upstream
            responses that only carry tool calls.
    """
    role: str
    content: str | None


class Usage(TypedDict):
    """Token usage counters of a completion."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class Choice(TypedDict):
    """A single completion choice of a non-streamed response."""
    index: int
    message: ChatMessage
    finish_reason: str | None


class ChatCompletionResponse(TypedDict):
    """A complete, non-streamed chat completion (OpenAI format)."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class ModelCard(TypedDict):
    """One entry of the GET /v1/models listing."""
    id: str
    object: str
    created: int
    owned_by: str


# =============================================================================
# Request Types
# =============================================================================


@dataclass
class ChatRequest:
    """Inbound OpenAI-shaped chat completion request."""

    model: str
    messages: list[dict[str, Any]]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False


@dataclass
class UpstreamRequest:
    """The payload sent to the NIM chat completions endpoint."""

    model: str
    messages: list[dict[str, Any]]
    temperature: float
    max_tokens: int
    stream: bool = False
    thinking: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self.messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": self.stream,
        }
        if self.thinking:
            payload["chat_template_kwargs"] = {"thinking": True}
        return payload


# =============================================================================
# Upstream Stream Types
# =============================================================================


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def extract_reasoning(container: Mapping[str, Any]) -> Optional[str]:
    """Return the first non-empty reasoning field of a delta or message."""
    for name in REASONING_FIELDS:
        value = container.get(name)
        if isinstance(value, str) and value:
            return value
    return None


@dataclass
class DeltaEvent:
    """One incremental unit of a streamed completion for a single choice."""

    index: int = 0
    content: Optional[str] = None
    reasoning_content: Optional[str] = None
    finish_reason: Optional[str] = None

    @classmethod
    def from_choice(cls, choice: Mapping[str, Any]) -> "DeltaEvent":
        delta = choice.get("delta")
        if not isinstance(delta, Mapping):
            delta = {}
        index = choice.get("index", 0)
        if not isinstance(index, int) or isinstance(index, bool):
            index = 0
        return cls(
            index=index,
            content=_optional_str(delta.get("content")),
            reasoning_content=extract_reasoning(delta),
            finish_reason=_optional_str(choice.get("finish_reason")),
        )
