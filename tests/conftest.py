"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio

from nim_proxy.testing import FakeUpstream, ProxyHarness


@pytest.fixture
def upstream() -> FakeUpstream:
    """A fake NIM upstream with an empty response queue."""
    return FakeUpstream()


@pytest_asyncio.fixture
async def harness(upstream: FakeUpstream) -> AsyncGenerator[ProxyHarness, None]:
    """A proxy app with default test settings wired to ``upstream``.

    Usage:
        async def test_chat(upstream, harness):
            upstream.enqueue_chat_response("Hello")
            async with harness.make_async_client() as client:
                ...
    """
    async with ProxyHarness(upstream) as proxy:
        yield proxy


@pytest_asyncio.fixture
async def make_harness(
    upstream: FakeUpstream,
) -> AsyncGenerator[Callable[..., ProxyHarness], None]:
    """Factory for harnesses with setting overrides, closed after the test.

    Usage:
        async def test_visible(upstream, make_harness):
            proxy = make_harness(show_reasoning=True)
    """
    created: list[ProxyHarness] = []

    def factory(**overrides) -> ProxyHarness:
        proxy = ProxyHarness(upstream, **overrides)
        created.append(proxy)
        return proxy

    yield factory

    for proxy in created:
        await proxy.aclose()
