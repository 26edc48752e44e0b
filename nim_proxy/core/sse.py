"""SSE stream transcoding and error detection.

``SSETranscoder`` rewrites the NIM event stream into an OpenAI-compatible
one. It works line by line: raw chunks are appended to a line buffer, every
complete line is handled as soon as it arrives and only a trailing partial
line is kept for the next chunk.
"""

from __future__ import annotations

import codecs
import json
import logging
from enum import Enum
from typing import Any, Optional

from ..types import REASONING_FIELDS, DeltaEvent
from .exceptions import PayloadTooLargeError

logger = logging.getLogger("nim-proxy")

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"

# Delimiters used when reasoning is shown to the client
THINK_OPEN = "<think>\n"
THINK_CLOSE = "\n</think>\n\n"

# Max bytes to buffer when checking for streaming errors before committing to client
STREAM_ERROR_CHECK_BUFFER_SIZE = 4096


def render_reasoning(reasoning: Optional[str], content: Optional[str]) -> Optional[str]:
    """Render reasoning and answer text as one visible string."""
    if not reasoning:
        return content
    return f"{THINK_OPEN}{reasoning}{THINK_CLOSE}{content or ''}"


def detect_sse_stream_error(data: bytes) -> Optional[str]:
    """
    Check if buffered SSE data contains an error event.

    Returns an error message if an error is detected, None otherwise.

    Detects patterns like:
    - data: {"type":"error","error":{...}}
    - data: {"error":{...}}
    """
    text = data.decode("utf-8", errors="replace")

    for line in text.split("\n"):
        line = line.strip()
        if not line.startswith(DATA_PREFIX):
            continue

        json_part = line[len(DATA_PREFIX):].strip()
        if not json_part or json_part == DONE_MARKER:
            continue

        try:
            parsed = json.loads(json_part)
        except json.JSONDecodeError:
            continue

        if not isinstance(parsed, dict):
            continue

        if parsed.get("type") == "error":
            error_obj = parsed.get("error") or {}
            if isinstance(error_obj, dict):
                error_msg = error_obj.get("message") or str(error_obj)
            else:
                error_msg = str(error_obj)
            return f"SSE stream error: {error_msg or 'unknown error'}"

        error_obj = parsed.get("error")
        if isinstance(error_obj, dict):
            error_msg = error_obj.get("message") or str(error_obj)
            error_type = error_obj.get("type", "unknown")
            return f"SSE stream error: {error_msg} (type={error_type})"

    return None


class StreamPhase(str, Enum):
    REASONING_CLOSED = "reasoning_closed"
    REASONING_OPEN = "reasoning_open"
    DONE = "done"
    FAILED = "failed"


class SSETranscoder:
    """Stateful rewriter for one upstream event stream.

    Reasoning fragments are either dropped (hidden policy, the default) or
    merged into ``delta.content`` between ``<think>`` delimiters (visible
    policy). Provider reasoning fields never reach the client.

    An instance belongs to exactly one response stream.
    """

    def __init__(
        self,
        show_reasoning: bool = False,
        max_buffer_bytes: Optional[int] = None,
    ) -> None:
        self.show_reasoning = show_reasoning
        self.max_buffer_bytes = max_buffer_bytes
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._open_choices: set[int] = set()
        self._envelope: dict[str, Any] = {"object": "chat.completion.chunk"}
        self._terminal: Optional[StreamPhase] = None
        self.decode_errors = 0

    @property
    def phase(self) -> StreamPhase:
        if self._terminal is not None:
            return self._terminal
        if self._open_choices:
            return StreamPhase.REASONING_OPEN
        return StreamPhase.REASONING_CLOSED

    @property
    def reasoning_open(self) -> bool:
        return bool(self._open_choices)

    @property
    def finished(self) -> bool:
        return self._terminal is not None

    def feed(self, chunk: bytes) -> list[bytes]:
        """Consume one raw chunk and return the output lines it completes."""
        if self.finished or not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        output: list[str] = []
        while not self.finished:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            output.extend(self._process_line(line.rstrip("\r")))
        if self.finished:
            self._buffer = ""
        elif (
            self.max_buffer_bytes is not None
            and len(self._buffer.encode("utf-8")) > self.max_buffer_bytes
        ):
            raise PayloadTooLargeError(
                f"SSE line exceeds {self.max_buffer_bytes} bytes",
                limit=self.max_buffer_bytes,
            )
        return [item.encode("utf-8") for item in output]

    def finish(self) -> list[bytes]:
        """Handle upstream close: flush the partial line and close reasoning."""
        if self.finished:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        leftover, self._buffer = self._buffer.rstrip("\r\n"), ""
        output: list[str] = []
        if leftover:
            output.extend(self._process_line(leftover))
            if not self.finished:
                # terminate the unfinished event before anything follows
                output.append("\n")
        if not self.finished:
            output.extend(self._closing_events())
            self._terminal = StreamPhase.DONE
        return [item.encode("utf-8") for item in output]

    def fail(self) -> None:
        """Mark the stream as aborted by an upstream error."""
        self._terminal = StreamPhase.FAILED
        self._buffer = ""
        self._open_choices.clear()

    def _process_line(self, line: str) -> list[str]:
        if not line.startswith(DATA_PREFIX):
            return [f"{line}\n"]

        data = line[len(DATA_PREFIX):].strip()
        if data == DONE_MARKER:
            output = self._closing_events()
            output.append(f"{line}\n\n")
            self._terminal = StreamPhase.DONE
            return output

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as exc:
            self.decode_errors += 1
            logger.debug("Forwarding undecodable SSE line unchanged: %s", exc)
            return [f"{line}\n"]
        if not isinstance(payload, dict):
            return [f"{line}\n"]

        event = self._transcode_event(payload)
        return [f"{DATA_PREFIX} {json.dumps(event, ensure_ascii=False)}\n"]

    def _transcode_event(self, event: dict[str, Any]) -> dict[str, Any]:
        self._envelope = {
            key: value
            for key, value in event.items()
            if key not in {"choices", "usage"}
        }
        choices = event.get("choices")
        if not isinstance(choices, list):
            return event

        for choice in choices:
            if not isinstance(choice, dict):
                continue
            delta = choice.get("delta")
            if not isinstance(delta, dict):
                continue
            parsed = DeltaEvent.from_choice(choice)
            merged = self._merge(parsed)
            for name in REASONING_FIELDS:
                delta.pop(name, None)
            if merged is not None:
                delta["content"] = merged
        return event

    def _merge(self, event: DeltaEvent) -> Optional[str]:
        """Return the new content for a delta, or None to leave it alone."""
        if not self.show_reasoning:
            return None

        parts: list[str] = []
        is_open = event.index in self._open_choices
        if event.reasoning_content:
            if not is_open:
                parts.append(THINK_OPEN)
                is_open = True
            parts.append(event.reasoning_content)
        if event.content:
            if is_open:
                parts.append(THINK_CLOSE)
                is_open = False
            parts.append(event.content)
        if is_open and event.finish_reason is not None:
            parts.append(THINK_CLOSE)
            is_open = False

        if is_open:
            self._open_choices.add(event.index)
        else:
            self._open_choices.discard(event.index)

        if not parts:
            return None
        return "".join(parts)

    def _closing_events(self) -> list[str]:
        output: list[str] = []
        for index in sorted(self._open_choices):
            event = dict(self._envelope)
            event["choices"] = [
                {
                    "index": index,
                    "delta": {"content": THINK_CLOSE},
                    "finish_reason": None,
                }
            ]
            output.append(
                f"{DATA_PREFIX} {json.dumps(event, ensure_ascii=False)}\n\n"
            )
        self._open_choices.clear()
        return output
