"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, AsyncIterator, Iterable, Optional

import httpx
import pytest
import pytest_asyncio

from modelstream.core.provider import ModelProviderInfo, WireApi
from modelstream.testing import FakeUpstream

TEST_API_KEY_ENV = "MODELSTREAM_TEST_API_KEY"
UPSTREAM_BASE = "http://upstream"


# =============================================================================
# Helpers
# =============================================================================


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def build_provider(
    wire_api: WireApi | str = WireApi.RESPONSES,
    *,
    base_url: Optional[str] = None,
    env_key: Optional[str] = TEST_API_KEY_ENV,
    **kwargs: Any,
) -> ModelProviderInfo:
    """Build a provider pointed at the fake upstream.

    Args:
        wire_api: Wire protocol the provider speaks
        base_url: Base URL override; defaults to the FakeUpstream route prefix
        env_key: Environment variable holding the credential (None for none)
    """
    wire_api = WireApi.parse(wire_api)
    if base_url is None:
        prefix = "/v1beta" if wire_api is WireApi.GEMINI else "/v1"
        base_url = f"{UPSTREAM_BASE}{prefix}"
    return ModelProviderInfo(
        name=f"test-{wire_api.value}",
        base_url=base_url,
        wire_api=wire_api,
        env_key=env_key,
        **kwargs,
    )


def byte_stream(chunks: Iterable[bytes]):
    """Async iterator over ``chunks``."""

    async def _iter() -> AsyncIterator[bytes]:
        for chunk in chunks:
            yield chunk

    return _iter()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def api_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Expose a credential under ``TEST_API_KEY_ENV``."""
    monkeypatch.setenv(TEST_API_KEY_ENV, "sk-test")
    return "sk-test"


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest_asyncio.fixture
async def http_client(upstream: FakeUpstream) -> AsyncIterator[httpx.AsyncClient]:
    """AsyncClient routed in-process to the FakeUpstream app."""
    transport = httpx.ASGITransport(app=upstream.app)
    async with httpx.AsyncClient(transport=transport) as client:
        yield client
