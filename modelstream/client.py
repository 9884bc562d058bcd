"""Entry point that routes a Prompt to the provider's wire protocol."""

import logging
from typing import Any, Mapping, Optional

import httpx

from .config_loader import ClientConfig, build_client_config
from .core.executor import RetryingRequestExecutor
from .core.provider import (
    DEFAULT_REQUEST_MAX_RETRIES,
    DEFAULT_STREAM_IDLE_TIMEOUT_MS,
    DEFAULT_TIMEOUT,
    ModelProviderInfo,
    WireApi,
)
from .core.stream import ResponseStream
from .types.prompt import Prompt
from .wire.base import StreamingBackend
from .wire.chat import ChatBackend
from .wire.gemini import GeminiBackend
from .wire.responses import ResponsesBackend

logger = logging.getLogger("modelstream")


class ModelClient:
    """Streams model turns from one configured provider.

    Usage:
        async with ModelClient("gpt-4.1", provider) as client:
            stream = await client.stream(Prompt.from_user_text("hi"))
            async for event in stream:
                ...

    When ``http_client`` is given it is borrowed and left open; otherwise the
    client creates one and closes it in ``aclose``.
    """

    def __init__(
        self,
        model: str,
        provider: ModelProviderInfo,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        reasoning: Optional[dict[str, Any]] = None,
        request_max_retries: int = DEFAULT_REQUEST_MAX_RETRIES,
        stream_idle_timeout_ms: int = DEFAULT_STREAM_IDLE_TIMEOUT_MS,
        sse_fixture: Optional[str] = None,
        executor: Optional[RetryingRequestExecutor] = None,
    ) -> None:
        self.model = model
        self.provider = provider
        self.reasoning = reasoning
        self.sse_fixture = sse_fixture
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(DEFAULT_TIMEOUT))
        self.max_retries = provider.effective_max_retries(request_max_retries)
        self.idle_timeout = provider.effective_idle_timeout(stream_idle_timeout_ms)
        self.executor = executor or RetryingRequestExecutor(self._http_client, self.max_retries)
        self._backend = self._build_backend()

    @classmethod
    def from_config(
        cls,
        config: "ClientConfig | Mapping[str, Any]",
        http_client: Optional[httpx.AsyncClient] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> "ModelClient":
        """Create a client from a loaded config dict or a resolved ClientConfig."""
        if not isinstance(config, ClientConfig):
            config = build_client_config(config, provider=provider, model=model)
        return cls(
            config.model,
            config.provider,
            http_client,
            reasoning=config.reasoning,
            request_max_retries=config.stream.request_max_retries,
            stream_idle_timeout_ms=config.stream.stream_idle_timeout_ms,
            sse_fixture=config.stream.sse_fixture,
        )

    @property
    def wire_api(self) -> WireApi:
        return self.provider.wire_api

    @property
    def backend(self) -> StreamingBackend:
        return self._backend

    def _build_backend(self) -> StreamingBackend:
        wire_api = self.provider.wire_api
        if wire_api is WireApi.RESPONSES:
            return ResponsesBackend(
                self.model,
                self.provider,
                self.executor,
                self.idle_timeout,
                reasoning=self.reasoning,
                sse_fixture=self.sse_fixture,
            )
        if wire_api is WireApi.CHAT:
            return ChatBackend(self.model, self.provider, self.executor, self.idle_timeout)
        if wire_api is WireApi.GEMINI:
            return GeminiBackend(self.model, self.provider, self.executor)
        raise ValueError(f"Unsupported wire_api: {wire_api}")

    async def stream(self, prompt: Prompt) -> ResponseStream:
        """Start one turn and return its event stream.

        Credential, transport and status failures raise here; failures after
        the stream is established are raised while iterating it.
        """
        logger.info(
            "Streaming turn from provider %s (%s) with model %s",
            self.provider.name,
            self.provider.wire_api.value,
            self.model,
        )
        return await self._backend.stream(prompt)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "ModelClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
