"""Ensure streamed and buffered renderings of the same completion agree."""

from __future__ import annotations

import pytest

from nim_proxy.core import ProxySettings, SSETranscoder, map_completion
from nim_proxy.testing import (
    build_nim_chat_response,
    build_nim_stream_chunks,
    encode_sse,
    reassemble_stream_content,
)

CASES = [
    pytest.param(["Let me ", "think."], ["Hel", "lo"], id="reasoning-and-content"),
    pytest.param([], ["Hello"], id="content-only"),
    pytest.param(["Only ", "thinking"], [], id="reasoning-only"),
    pytest.param(["思考"], ["答え", "🙂"], id="multibyte"),
]


def _stream_text(reasoning: list[str], content: list[str], show_reasoning: bool, chunk_size: int) -> str:
    data = encode_sse(build_nim_stream_chunks(content, reasoning=reasoning))
    transcoder = SSETranscoder(show_reasoning=show_reasoning)
    output: list[bytes] = []
    for start in range(0, len(data), chunk_size):
        output.extend(transcoder.feed(data[start:start + chunk_size]))
    output.extend(transcoder.finish())
    return reassemble_stream_content(b"".join(output))


def _buffered_text(reasoning: list[str], content: list[str], show_reasoning: bool) -> str:
    body = build_nim_chat_response(
        "".join(content) if content else None,
        reasoning="".join(reasoning) if reasoning else None,
    )
    mapped = map_completion(body, "gpt-4o", ProxySettings(show_reasoning=show_reasoning))
    return mapped["choices"][0]["message"]["content"] or ""


@pytest.mark.parametrize("reasoning, content", CASES)
@pytest.mark.parametrize("show_reasoning", [False, True])
@pytest.mark.parametrize("chunk_size", [1, 5, 4096])
def test_stream_matches_non_stream(reasoning, content, show_reasoning, chunk_size):
    assert _stream_text(reasoning, content, show_reasoning, chunk_size) == _buffered_text(
        reasoning, content, show_reasoning
    )
