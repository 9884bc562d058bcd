"""Google Gemini backend: a single-shot document replayed as a stream.

``generateContent`` answers with one JSON document:

    {"candidates": [{"content": {"role": "model",
                                 "parts": [{"text": "Hello"}]}}]}

Each text part becomes one assistant ``OutputItemDone``; a ``Completed``
event with a freshly generated identifier follows, since the API assigns no
turn id.
"""

import json
import logging
import uuid
from typing import Any, Mapping, Optional

import httpx

from ..core.exceptions import StreamError, TransportError
from ..core.executor import RetryingRequestExecutor
from ..core.provider import ModelProviderInfo, build_outbound_headers, format_httpx_error
from ..core.stream import EventSender, ResponseStream, spawn_producer
from ..types.events import Completed, OutputItemDone
from ..types.items import assistant_message
from ..types.prompt import Prompt

logger = logging.getLogger("modelstream")

TEXT_CONTENT_TYPES = {"input_text", "output_text", "text"}


def map_prompt_to_gemini_request(prompt: Prompt) -> dict[str, Any]:
    """Build the ``generateContent`` request body from a Prompt."""
    contents: list[dict[str, Any]] = []
    for item in prompt.input:
        if item.get("type") != "message":
            logger.warning("Unsupported input item type for Gemini: %s", item.get("type"))
            continue
        parts: list[dict[str, str]] = []
        for content in item.get("content") or []:
            if (
                isinstance(content, Mapping)
                and content.get("type") in TEXT_CONTENT_TYPES
                and isinstance(content.get("text"), str)
            ):
                parts.append({"text": content["text"]})
            else:
                kind = content.get("type") if isinstance(content, Mapping) else type(content).__name__
                logger.warning("Unsupported content item type for Gemini: %s", kind)
        if parts:
            role = "user" if item.get("role") == "user" else "model"
            contents.append({"role": role, "parts": parts})

    request: dict[str, Any] = {"contents": contents}
    if prompt.instructions:
        request["systemInstruction"] = {"parts": [{"text": prompt.instructions}]}
    return request


def model_path(model: str) -> str:
    """``models/{id}`` path segment, accepting already-prefixed names."""
    if model.startswith("models/"):
        return model
    return f"models/{model}"


def iter_candidate_texts(document: Mapping[str, Any]):
    """Yield every text part found under candidates -> content -> parts."""
    for candidate in document.get("candidates") or []:
        if not isinstance(candidate, Mapping):
            continue
        content = candidate.get("content")
        if not isinstance(content, Mapping):
            continue
        parts = content.get("parts")
        if not isinstance(parts, list):
            continue
        for part in parts:
            if not isinstance(part, Mapping):
                logger.debug("Skipping malformed Gemini part: %r", part)
                continue
            text = part.get("text")
            if isinstance(text, str):
                yield text


def decode_gemini_response(body: bytes) -> Optional[dict[str, Any]]:
    """Parse the response envelope; None when it is not a Gemini document."""
    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(document, dict):
        return None
    candidates = document.get("candidates")
    if candidates is not None and not isinstance(candidates, list):
        return None
    return document


async def process_gemini_response(body: bytes, sender: EventSender) -> None:
    """Emit the events for a complete ``generateContent`` body."""
    document = decode_gemini_response(body)
    if document is None:
        logger.error(
            "Failed to parse Gemini response. Response body: %s",
            body.decode("utf-8", errors="replace")[:1000],
        )
        await sender.send(StreamError("Failed to parse Gemini response"))
        return

    for text in iter_candidate_texts(document):
        if not await sender.send(OutputItemDone(item=assistant_message(text))):
            return
    await sender.send(Completed(response_id=str(uuid.uuid4())))


class GeminiBackend:
    """Calls ``models/{model}:generateContent`` and adapts the result."""

    name = "gemini"

    def __init__(
        self,
        model: str,
        provider: ModelProviderInfo,
        executor: RetryingRequestExecutor,
    ) -> None:
        self.model = model
        self.provider = provider
        self.executor = executor

    async def stream(self, prompt: Prompt) -> ResponseStream:
        api_key = self.provider.api_key()
        if api_key is None:
            logger.warning("Gemini provider %s has no env_key configured", self.provider.name)
        request = map_prompt_to_gemini_request(prompt)
        extra = {"x-goog-api-key": api_key} if api_key else None
        headers = build_outbound_headers(self.provider, None, extra)
        url = self.provider.build_url(f"/{model_path(self.model)}:generateContent")

        resp = await self.executor.execute(url, request, headers, timeout=self.provider.request_timeout())
        try:
            body = await resp.aread()
        except httpx.HTTPError as exc:
            raise TransportError(format_httpx_error(exc, url=url)) from exc
        finally:
            await resp.aclose()

        async def _produce(sender: EventSender) -> None:
            await process_gemini_response(body, sender)

        return spawn_producer(_produce, name=f"gemini:{self.provider.name}")
