"""Request orchestration for the NIM proxy."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..types import ChatCompletionResponse, ChatRequest, UpstreamRequest
from .exceptions import PayloadTooLargeError, StreamAbort
from .mapper import map_completion
from .model_table import ModelTable
from .normalizer import normalize_request
from .settings import ProxySettings
from .sse import SSETranscoder
from .transport import UpstreamClient, UpstreamStream

logger = logging.getLogger("nim-proxy")

DisconnectChecker = Callable[[], Awaitable[bool]]


class ProxyRouter:
    """Routes chat requests to the NIM upstream and shapes the replies."""

    def __init__(
        self,
        settings: ProxySettings,
        client: UpstreamClient,
        models: ModelTable,
    ) -> None:
        self.settings = settings
        self.client = client
        self.models = models

    def prepare(self, request: ChatRequest) -> UpstreamRequest:
        upstream_request = normalize_request(request, self.settings, self.models)
        logger.info(
            f"Routing model {request.model} -> {upstream_request.model} "
            f"(stream={upstream_request.stream}, max_tokens={upstream_request.max_tokens})"
        )
        return upstream_request

    async def complete(self, request: ChatRequest) -> ChatCompletionResponse:
        """Run a buffered completion and map it to the OpenAI shape."""
        upstream_request = self.prepare(request)
        body = await self.client.post_json(upstream_request.to_payload())
        return map_completion(body, request.model, self.settings)

    async def open_stream(self, request: ChatRequest) -> UpstreamStream:
        """Open the upstream stream; failures here are still reportable."""
        upstream_request = self.prepare(request)
        return await self.client.open_stream(upstream_request.to_payload())

    async def relay(
        self,
        upstream: UpstreamStream,
        disconnect_checker: Optional[DisconnectChecker] = None,
    ) -> AsyncIterator[bytes]:
        """Transcode an open upstream stream into client SSE bytes.

        Once the first byte has been sent there is no way to report a failure
        with a status code, so upstream errors end the stream instead.
        """
        transcoder = SSETranscoder(
            show_reasoning=self.settings.show_reasoning,
            max_buffer_bytes=self.settings.max_body_bytes,
        )
        chunks = upstream.iter_bytes().__aiter__()
        chunk_count = 0
        try:
            while not transcoder.finished:
                if disconnect_checker and await disconnect_checker():
                    logger.info(
                        f"Client disconnected after {chunk_count} chunks, closing upstream stream"
                    )
                    return
                try:
                    chunk = await chunks.__anext__()
                except StopAsyncIteration:
                    break
                chunk_count += 1
                if chunk_count % 50 == 0:
                    logger.debug(f"Relayed {chunk_count} chunks")
                for line in transcoder.feed(chunk):
                    yield line

            if not transcoder.finished:
                logger.warning(
                    "Upstream closed the stream without a terminal marker after %d chunks",
                    chunk_count,
                )
                for line in transcoder.finish():
                    yield line
            if transcoder.decode_errors:
                logger.debug(
                    "Forwarded %d undecodable SSE lines unchanged",
                    transcoder.decode_errors,
                )
        except (StreamAbort, PayloadTooLargeError) as exc:
            transcoder.fail()
            logger.error(f"Stream aborted after {chunk_count} chunks: {exc.message}")
        except asyncio.CancelledError:
            logger.info("Streaming response cancelled by client")
            raise
        finally:
            logger.debug(f"Stream finished, total chunks: {chunk_count}")
            await upstream.aclose()
