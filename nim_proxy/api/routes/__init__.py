"""API routes for the proxy."""

from .chat import chat_completions, parse_chat_request
from .health import health, root
from .models import list_models

__all__ = [
    "chat_completions",
    "health",
    "list_models",
    "parse_chat_request",
    "root",
]
