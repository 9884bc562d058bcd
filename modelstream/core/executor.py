"""Retrying request execution shared by every wire protocol."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from .backoff import backoff
from .exceptions import RetryLimitError, TransportError, UnexpectedStatusError
from .provider import DEFAULT_REQUEST_MAX_RETRIES, format_httpx_error, safe_headers_for_log

logger = logging.getLogger("modelstream")

TOO_MANY_REQUESTS = 429


def is_retryable_status(status_code: int) -> bool:
    return status_code == TOO_MANY_REQUESTS or 500 <= status_code < 600


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a numeric ``Retry-After`` header, else None."""
    if value is None:
        return None
    text = value.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    return float(int(text))


@dataclass
class AttemptState:
    """Per-request attempt bookkeeping."""

    attempt: int = 0
    retry_after: Optional[float] = None

    def next_attempt(self) -> int:
        self.attempt += 1
        self.retry_after = None
        return self.attempt


class RetryingRequestExecutor:
    """Issues a POST and retries transport failures, 429 and 5xx responses.

    A successful response is returned unread (streamed); the caller owns it
    and must close it.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int = DEFAULT_REQUEST_MAX_RETRIES,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        backoff_fn: Callable[[int], float] = backoff,
    ) -> None:
        self.client = client
        self.max_retries = max(0, max_retries)
        self._sleep = sleep
        self._backoff = backoff_fn

    async def execute(
        self,
        url: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
        timeout: Optional[httpx.Timeout] = None,
    ) -> httpx.Response:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        logger.debug("POST to %s: %s", url, body.decode("utf-8", errors="replace"))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Outbound headers: %s", safe_headers_for_log(headers))

        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout

        state = AttemptState()
        while True:
            attempt = state.next_attempt()
            request = self.client.build_request(
                "POST", url, headers=dict(headers), content=body, **extra
            )
            try:
                resp = await self.client.send(request, stream=True)
            except httpx.TransportError as exc:
                detail = format_httpx_error(exc, url=url)
                if attempt > self.max_retries:
                    logger.error(
                        "Request to %s failed after %d attempt(s): %s", url, attempt, detail
                    )
                    raise TransportError(detail) from exc
                delay = self._backoff(attempt)
                logger.warning(
                    "Attempt %d to %s failed (%s); retrying in %.2fs",
                    attempt,
                    url,
                    detail,
                    delay,
                )
                await self._sleep(delay)
                continue

            if resp.is_success:
                logger.debug("Received response from %s: status %s", url, resp.status_code)
                return resp

            status = resp.status_code
            try:
                await resp.aread()
                text = resp.text
            except httpx.HTTPError as exc:
                logger.debug("Failed to read error body from %s: %s", url, exc)
                text = ""
            finally:
                await resp.aclose()

            if not is_retryable_status(status):
                logger.error("Upstream %s returned status %d: %s", url, status, text[:500])
                raise UnexpectedStatusError(status, text)

            if attempt > self.max_retries:
                logger.error(
                    "Upstream %s still returned status %d after %d attempt(s)",
                    url,
                    status,
                    attempt,
                )
                raise RetryLimitError(status)

            state.retry_after = parse_retry_after(resp.headers.get("retry-after"))
            delay = state.retry_after if state.retry_after is not None else self._backoff(attempt)
            logger.warning(
                "Upstream %s returned retryable status %d on attempt %d; retrying in %.2fs",
                url,
                status,
                attempt,
                delay,
            )
            await self._sleep(delay)
