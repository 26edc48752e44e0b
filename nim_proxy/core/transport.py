"""Pooled HTTP client for the NIM upstream with timeout, size cap and retry."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

import httpx

from .exceptions import (
    DecodeError,
    PayloadTooLargeError,
    RetryableUpstreamError,
    StreamAbort,
    TransportError,
    UpstreamStatusError,
)
from .failures import extract_error_message
from .settings import ProxySettings
from .sse import STREAM_ERROR_CHECK_BUFFER_SIZE, detect_sse_stream_error

logger = logging.getLogger("nim-proxy")

T = TypeVar("T")

DEFAULT_LIMITS = httpx.Limits(
    max_connections=100,
    max_keepalive_connections=20,
    keepalive_expiry=30.0,
)


def format_httpx_error(exc: Exception, url: str, timeout: float) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    if isinstance(exc, httpx.RequestError):
        try:
            request = exc.request
        except RuntimeError:
            request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    else:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


class UpstreamStream:
    """An open upstream event stream whose first chunk is already received."""

    def __init__(
        self,
        response: httpx.Response,
        chunks: AsyncIterator[bytes],
        first_chunk: bytes,
    ) -> None:
        self.response = response
        self.status_code = response.status_code
        self._chunks = chunks
        self._first_chunk = first_chunk
        self._closed = False

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield raw chunks in arrival order, starting with the prefetched one."""
        if self._first_chunk:
            first, self._first_chunk = self._first_chunk, b""
            yield first
        try:
            async for chunk in self._chunks:
                if chunk:
                    yield chunk
        except httpx.HTTPError as exc:
            raise StreamAbort(
                f"Upstream stream failed: {exc.__class__.__name__}: {exc}"
            ) from exc

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()


class UpstreamClient:
    """Keep-alive client for the NIM chat completions endpoint.

    Every attempt is bounded by ``request_timeout``. Transport failures and
    non-2xx answers are retried ``max_retries`` times with a fixed delay;
    oversized bodies are not retried.
    """

    def __init__(
        self,
        settings: ProxySettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        limits: httpx.Limits = DEFAULT_LIMITS,
    ) -> None:
        self.url = settings.chat_completions_url
        self.timeout = settings.request_timeout
        self.max_retries = settings.max_retries
        self.retry_delay = settings.retry_delay
        self.max_body_bytes = settings.max_body_bytes

        headers = {
            "Content-Type": "application/json",
            # Explicitly request uncompressed responses
            "Accept-Encoding": "identity",
        }
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"

        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(self.timeout),
            limits=limits,
            transport=transport,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post_json(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a buffered request and return the decoded JSON body."""
        body = self._encode(payload)
        return await self._with_retries(lambda: self._post_once(body), "request")

    async def open_stream(self, payload: dict[str, Any]) -> UpstreamStream:
        """Send a streaming request and return the open stream handle."""
        body = self._encode(payload)
        return await self._with_retries(lambda: self._open_stream_once(body), "stream")

    def _encode(self, payload: dict[str, Any]) -> bytes:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        if len(body) > self.max_body_bytes:
            raise PayloadTooLargeError(
                f"Upstream request body of {len(body)} bytes exceeds "
                f"the {self.max_body_bytes} byte limit",
                limit=self.max_body_bytes,
            )
        return body

    async def _with_retries(
        self, operation: Callable[[], Awaitable[T]], description: str
    ) -> T:
        attempts = self.max_retries + 1
        attempt = 0

        while True:
            attempt += 1
            logger.debug(f"Upstream {description} attempt {attempt}/{attempts} to {self.url}")
            try:
                result = await operation()
            except RetryableUpstreamError as exc:
                logger.warning(
                    "Upstream %s attempt %d/%d failed: %s",
                    description,
                    attempt,
                    attempts,
                    exc.message,
                )
                if attempt >= attempts:
                    logger.error(f"Upstream {description} exhausted all {attempts} attempts")
                    raise
            else:
                if attempt > 1:
                    logger.info(f"Upstream {description} succeeded on attempt {attempt}")
                return result

            logger.info(f"Retrying upstream {description} in {self.retry_delay:.2f}s...")
            await asyncio.sleep(self.retry_delay)

    async def _post_once(self, body: bytes) -> dict[str, Any]:
        request = self._client.build_request(
            "POST", self.url, content=body, headers={"Accept": "application/json"}
        )

        async def _attempt() -> tuple[int, bytes]:
            response = await self._client.send(request, stream=True)
            try:
                return response.status_code, await self._read_body(response)
            finally:
                await response.aclose()

        status, data = await self._guard(_attempt())
        if not 200 <= status < 300:
            raise self._status_error(status, data)

        try:
            decoded = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise DecodeError(f"Upstream returned invalid JSON: {exc}") from exc
        if not isinstance(decoded, dict):
            raise DecodeError("Upstream returned a non-object JSON body")
        return decoded

    async def _open_stream_once(self, body: bytes) -> UpstreamStream:
        # The read deadline only covers the first chunk; later reads are unbounded.
        stream_timeout = httpx.Timeout(
            connect=self.timeout, read=None, write=self.timeout, pool=self.timeout
        )
        request = self._client.build_request(
            "POST",
            self.url,
            content=body,
            headers={"Accept": "text/event-stream"},
            timeout=stream_timeout,
        )

        async def _attempt() -> UpstreamStream:
            response = await self._client.send(request, stream=True)
            try:
                if not 200 <= response.status_code < 300:
                    data = await self._read_body(response)
                    raise self._status_error(response.status_code, data)

                chunks = response.aiter_bytes()
                first_chunk = b""
                while not first_chunk:
                    try:
                        first_chunk = await chunks.__anext__()
                    except StopAsyncIteration:
                        break

                sse_error = detect_sse_stream_error(
                    first_chunk[:STREAM_ERROR_CHECK_BUFFER_SIZE]
                )
                if sse_error:
                    raise UpstreamStatusError(sse_error, status_code=502, body=None)
            except BaseException:
                await response.aclose()
                raise
            return UpstreamStream(response, chunks, first_chunk)

        return await self._guard(_attempt())

    async def _guard(self, attempt: Awaitable[T]) -> T:
        """Apply the per-attempt deadline and translate httpx failures."""
        try:
            return await asyncio.wait_for(attempt, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(
                f"Upstream request to {self.url} timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                format_httpx_error(exc, self.url, self.timeout)
            ) from exc

    async def _read_body(self, response: httpx.Response) -> bytes:
        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            raise PayloadTooLargeError(
                f"Upstream response of {declared} bytes exceeds "
                f"the {self.max_body_bytes} byte limit",
                limit=self.max_body_bytes,
            )
        buffer = bytearray()
        async for chunk in response.aiter_bytes():
            buffer.extend(chunk)
            if len(buffer) > self.max_body_bytes:
                raise PayloadTooLargeError(
                    f"Upstream response exceeds the {self.max_body_bytes} byte limit",
                    limit=self.max_body_bytes,
                )
        return bytes(buffer)

    @staticmethod
    def _status_error(status: int, data: bytes) -> UpstreamStatusError:
        detail = extract_error_message(data)
        message = f"Upstream returned status {status}"
        if detail:
            message = f"{message}: {detail}"
        return UpstreamStatusError(message, status_code=status, body=data)
