"""Chat Completions backend with per-turn aggregation.

Chat Completion Events:
    data: {"id":"chatcmpl-1","choices":[{"delta":{"role":"assistant"},"index":0}]}
    data: {"id":"chatcmpl-1","choices":[{"delta":{"content":"Hello"},"index":0}]}
    data: {"id":"chatcmpl-1","choices":[{"delta":{},"finish_reason":"stop","index":0}]}
    data: [DONE]

Every content delta is surfaced as a partial assistant message; ``aggregate``
folds those into the single final message callers expect, matching what the
Responses API delivers.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from ..core.executor import RetryingRequestExecutor
from ..core.exceptions import StreamError
from ..core.provider import ModelProviderInfo, build_outbound_headers
from ..core.sse import SSEDecodeError, aiter_sse_events
from ..core.stream import EventSender, ResponseStream, spawn_producer
from ..types.events import Completed, OutputItemDone, ResponseEvent
from ..types.items import assistant_message, message_text
from ..types.prompt import Prompt

logger = logging.getLogger("modelstream")

DONE_SENTINEL = "[DONE]"


def build_chat_messages(prompt: Prompt) -> list[dict[str, Any]]:
    """Translate Prompt input items into chat ``messages``."""
    messages: list[dict[str, Any]] = []
    if prompt.instructions:
        messages.append({"role": "system", "content": prompt.instructions})

    for item in prompt.input:
        kind = item.get("type")
        if kind == "message":
            messages.append(
                {"role": item.get("role") or "user", "content": message_text(item)}
            )
        elif kind == "function_call":
            messages.append(
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": item.get("call_id"),
                            "type": "function",
                            "function": {
                                "name": item.get("name"),
                                "arguments": item.get("arguments") or "{}",
                            },
                        }
                    ],
                }
            )
        elif kind == "function_call_output":
            output = item.get("output")
            if not isinstance(output, str):
                output = json.dumps(output, ensure_ascii=False)
            messages.append(
                {"role": "tool", "tool_call_id": item.get("call_id"), "content": output}
            )
        else:
            logger.debug("Skipping input item of type %s for chat backend", kind)
    return messages


def build_chat_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Wrap Responses-style function tools into the chat ``tools`` format."""
    converted: list[dict[str, Any]] = []
    for tool in tools:
        if not isinstance(tool, dict):
            continue
        if isinstance(tool.get("function"), dict):
            converted.append(tool)
        elif tool.get("type") == "function" and tool.get("name"):
            function = {"name": tool["name"]}
            if tool.get("description"):
                function["description"] = tool["description"]
            if tool.get("parameters") is not None:
                function["parameters"] = tool["parameters"]
            converted.append({"type": "function", "function": function})
        else:
            logger.debug("Skipping tool %r unsupported by chat backend", tool.get("type"))
    return converted


def build_chat_payload(prompt: Prompt, model: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": model,
        "messages": build_chat_messages(prompt),
        "stream": True,
    }
    tools = build_chat_tools(prompt.tools)
    if tools:
        payload["tools"] = tools
    return payload


async def process_chat_sse(
    byte_stream: AsyncIterator[bytes],
    sender: EventSender,
    idle_timeout: float,
) -> None:
    """Forward chat completion chunks from ``byte_stream`` as ResponseEvents."""
    frames = aiter_sse_events(byte_stream)
    response_id: Optional[str] = None
    tool_calls: dict[int, dict[str, Any]] = {}
    saw_finish = False

    try:
        while True:
            try:
                sse = await asyncio.wait_for(frames.__anext__(), timeout=idle_timeout)
            except StopAsyncIteration:
                if not saw_finish:
                    await sender.send(StreamError("stream closed before chat completion finished"))
                    return
                break
            except asyncio.TimeoutError:
                await sender.send(StreamError("idle timeout waiting for SSE"))
                return
            except (SSEDecodeError, httpx.HTTPError) as exc:
                logger.debug("SSE Error: %s", exc)
                await sender.send(StreamError(str(exc) or exc.__class__.__name__))
                return

            if sse.data.strip() == DONE_SENTINEL:
                break

            try:
                chunk = json.loads(sse.data)
            except json.JSONDecodeError:
                logger.debug("Failed to parse chat chunk: %s", sse.data[:100])
                continue
            if not isinstance(chunk, dict):
                continue
            if isinstance(chunk.get("id"), str) and chunk["id"]:
                response_id = chunk["id"]

            for choice in chunk.get("choices") or []:
                if not isinstance(choice, dict):
                    continue
                delta = choice.get("delta") or {}
                content = delta.get("content")
                if isinstance(content, str) and content:
                    if not await sender.send(OutputItemDone(item=assistant_message(content))):
                        return
                for position, call in enumerate(delta.get("tool_calls") or []):
                    _accumulate_tool_call(tool_calls, call, position)
                if choice.get("finish_reason"):
                    saw_finish = True
                    if not await _flush_tool_calls(tool_calls, sender):
                        return

        if not await _flush_tool_calls(tool_calls, sender):
            return
        await sender.send(Completed(response_id=response_id or ""))
    finally:
        await frames.aclose()


def _accumulate_tool_call(
    tool_calls: dict[int, dict[str, Any]], call: Any, position: int
) -> None:
    if not isinstance(call, dict):
        return
    # Some servers send a null index; fall back to the position in the delta.
    index = call.get("index")
    if not isinstance(index, int) or isinstance(index, bool):
        index = position
    entry = tool_calls.setdefault(index, {"call_id": None, "name": "", "arguments": ""})
    if call.get("id"):
        entry["call_id"] = call["id"]
    function = call.get("function") or {}
    if function.get("name"):
        entry["name"] = function["name"]
    if isinstance(function.get("arguments"), str):
        entry["arguments"] += function["arguments"]


async def _flush_tool_calls(tool_calls: dict[int, dict[str, Any]], sender: EventSender) -> bool:
    for index in sorted(tool_calls):
        entry = tool_calls[index]
        item = {
            "type": "function_call",
            "name": entry["name"],
            "arguments": entry["arguments"] or "{}",
            "call_id": entry["call_id"] or f"call_{index}",
        }
        if not await sender.send(OutputItemDone(item=item)):
            return False
    tool_calls.clear()
    return True


async def aggregate(events: AsyncIterator[ResponseEvent]) -> AsyncIterator[ResponseEvent]:
    """Yield only final-per-turn events.

    Assistant message fragments are concatenated and emitted as one message
    right before ``Completed``; every other item passes through untouched.
    """
    cumulative = ""
    async for event in events:
        if isinstance(event, OutputItemDone):
            item = event.item
            if item.get("type") == "message" and item.get("role") == "assistant":
                cumulative += message_text(item)
                continue
            yield event
        elif isinstance(event, Completed):
            if cumulative:
                yield OutputItemDone(item=assistant_message(cumulative))
                cumulative = ""
            yield event
            return
        else:
            yield event


class ChatBackend:
    """Streams a turn from a Chat Completions endpoint."""

    name = "chat"

    def __init__(
        self,
        model: str,
        provider: ModelProviderInfo,
        executor: RetryingRequestExecutor,
        idle_timeout: float,
    ) -> None:
        self.model = model
        self.provider = provider
        self.executor = executor
        self.idle_timeout = idle_timeout

    async def stream_chat_completions(self, prompt: Prompt) -> ResponseStream:
        """Raw stream: one event per content delta."""
        api_key = self.provider.api_key()
        payload = build_chat_payload(prompt, self.model)
        headers = build_outbound_headers(
            self.provider, api_key, {"Accept": "text/event-stream"}
        )
        url = self.provider.build_url("/chat/completions")
        resp = await self.executor.execute(url, payload, headers, timeout=self.provider.stream_timeout())
        idle_timeout = self.idle_timeout

        async def _produce(sender: EventSender) -> None:
            try:
                await process_chat_sse(resp.aiter_bytes(), sender, idle_timeout)
            finally:
                await resp.aclose()

        return spawn_producer(_produce, name=f"chat:{self.provider.name}")

    async def stream(self, prompt: Prompt) -> ResponseStream:
        raw = await self.stream_chat_completions(prompt)
        aggregated = aggregate(raw)

        async def _forward(sender: EventSender) -> None:
            try:
                async for event in aggregated:
                    if not await sender.send(event):
                        break
            finally:
                await aggregated.aclose()
                await raw.aclose()

        return spawn_producer(_forward, name=f"chat-aggregate:{self.provider.name}")
