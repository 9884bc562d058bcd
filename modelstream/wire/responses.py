"""OpenAI Responses API backend (incremental SSE)."""

import logging
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from ..core.exceptions import ConfigurationError
from ..core.executor import RetryingRequestExecutor
from ..core.interpreter import process_sse
from ..core.provider import ModelProviderInfo, build_outbound_headers
from ..core.stream import EventSender, ResponseStream, spawn_producer
from ..types.prompt import Prompt

logger = logging.getLogger("modelstream")

FIXTURE_CHUNK_SIZE = 8192


def build_responses_payload(
    prompt: Prompt,
    model: str,
    reasoning: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build the JSON body for ``POST /responses``."""
    payload: dict[str, Any] = {
        "model": model,
        "instructions": prompt.instructions,
        "input": list(prompt.input),
        "tools": list(prompt.tools),
        "tool_choice": "auto",
        "parallel_tool_calls": False,
        "store": prompt.store,
        "stream": True,
    }
    if reasoning is not None:
        payload["reasoning"] = reasoning
    if prompt.prev_id is not None:
        payload["previous_response_id"] = prompt.prev_id
    return payload


class ResponsesBackend:
    """Streams a turn from a Responses API endpoint."""

    name = "responses"

    def __init__(
        self,
        model: str,
        provider: ModelProviderInfo,
        executor: RetryingRequestExecutor,
        idle_timeout: float,
        reasoning: Optional[dict[str, Any]] = None,
        sse_fixture: Optional[str] = None,
    ) -> None:
        self.model = model
        self.provider = provider
        self.executor = executor
        self.idle_timeout = idle_timeout
        self.reasoning = reasoning
        self.sse_fixture = sse_fixture

    async def stream(self, prompt: Prompt) -> ResponseStream:
        if self.sse_fixture:
            logger.warning("Streaming from fixture %s", self.sse_fixture)
            return stream_from_fixture(self.sse_fixture, self.idle_timeout)

        api_key = self.provider.api_key()
        payload = build_responses_payload(prompt, self.model, self.reasoning)
        headers = build_outbound_headers(
            self.provider,
            api_key,
            {
                "OpenAI-Beta": "responses=experimental",
                "Accept": "text/event-stream",
            },
        )
        url = self.provider.build_url("/responses")
        resp = await self.executor.execute(url, payload, headers, timeout=self.provider.stream_timeout())
        idle_timeout = self.idle_timeout

        async def _produce(sender: EventSender) -> None:
            try:
                await process_sse(resp.aiter_bytes(), sender, idle_timeout)
            finally:
                await resp.aclose()

        return spawn_producer(_produce, name=f"responses:{self.provider.name}")


def stream_from_fixture(path: str, idle_timeout: float) -> ResponseStream:
    """Replay an SSE fixture file; every line becomes its own frame."""
    fixture = Path(path)
    try:
        lines = fixture.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise ConfigurationError(f"Cannot read SSE fixture {fixture}: {exc}") from exc
    content = "".join(f"{line}\n\n" for line in lines).encode("utf-8")

    async def _chunks() -> AsyncIterator[bytes]:
        for offset in range(0, len(content), FIXTURE_CHUNK_SIZE):
            yield content[offset:offset + FIXTURE_CHUNK_SIZE]

    async def _produce(sender: EventSender) -> None:
        await process_sse(_chunks(), sender, idle_timeout)

    return spawn_producer(_produce, name=f"fixture:{fixture.name}")
