"""Tests for the retrying request executor."""

import json

import httpx
import pytest

from modelstream.core.exceptions import RetryLimitError, TransportError, UnexpectedStatusError
from modelstream.core.executor import (
    AttemptState,
    RetryingRequestExecutor,
    is_retryable_status,
    parse_retry_after,
)

URL = "http://upstream/v1/responses"


def scripted_transport(responses, calls):
    """MockTransport returning ``responses`` in order; exceptions are raised."""
    script = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        outcome = script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return httpx.MockTransport(handler)


def fixed_backoff(attempt: int) -> float:
    return attempt * 0.5


async def execute(responses, sleeps, max_retries=4):
    calls: list[httpx.Request] = []
    async with httpx.AsyncClient(transport=scripted_transport(responses, calls)) as client:
        executor = RetryingRequestExecutor(
            client, max_retries, sleep=sleeps, backoff_fn=fixed_backoff
        )
        try:
            resp = await executor.execute(URL, {"model": "m"}, {"Authorization": "Bearer k"})
            body = await resp.aread()
            await resp.aclose()
            return calls, resp.status_code, body
        except Exception as exc:
            return calls, exc, None


class TestRetryPolicy:
    def test_retryable_statuses(self):
        assert is_retryable_status(429)
        assert is_retryable_status(500)
        assert is_retryable_status(503)
        assert not is_retryable_status(400)
        assert not is_retryable_status(401)
        assert not is_retryable_status(404)

    def test_parse_retry_after(self):
        assert parse_retry_after("3") == 3.0
        assert parse_retry_after(" 12 ") == 12.0
        assert parse_retry_after(None) is None
        assert parse_retry_after("1.5") is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
        assert parse_retry_after("\u00b2") is None
        assert parse_retry_after("\u0661\u0662") is None

    def test_attempt_state_counts_from_one(self):
        state = AttemptState(retry_after=2.0)
        assert state.next_attempt() == 1
        assert state.retry_after is None
        assert state.next_attempt() == 2


@pytest.mark.asyncio
async def test_success_returns_streaming_response(sleeps):
    calls, status, body = await execute([httpx.Response(200, content=b"data: x\n\n")], sleeps)

    assert status == 200
    assert body == b"data: x\n\n"
    assert len(calls) == 1
    assert json.loads(calls[0].content) == {"model": "m"}
    assert calls[0].headers["authorization"] == "Bearer k"
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_succeed(sleeps):
    responses = [httpx.Response(500), httpx.Response(502), httpx.Response(200, content=b"ok")]

    calls, status, _ = await execute(responses, sleeps)

    assert status == 200
    assert len(calls) == 3
    assert sleeps.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retry_limit_after_max_retries_plus_one_attempts(sleeps):
    responses = [httpx.Response(500) for _ in range(4)]

    calls, error, _ = await execute(responses, sleeps, max_retries=3)

    assert isinstance(error, RetryLimitError)
    assert error.status_code == 500
    assert len(calls) == 4
    assert len(sleeps.delays) == 3


@pytest.mark.asyncio
async def test_zero_retries_fails_on_first_retryable_status(sleeps):
    calls, error, _ = await execute([httpx.Response(429)], sleeps, max_retries=0)

    assert isinstance(error, RetryLimitError)
    assert error.status_code == 429
    assert len(calls) == 1
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_retry_after_header_overrides_backoff(sleeps):
    responses = [
        httpx.Response(429, headers={"Retry-After": "7"}),
        httpx.Response(429, headers={"Retry-After": "soon"}),
        httpx.Response(200),
    ]

    _, status, _ = await execute(responses, sleeps)

    assert status == 200
    assert sleeps.delays == [7.0, 1.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 404])
async def test_client_errors_are_not_retried(sleeps, status):
    responses = [httpx.Response(status, text="bad request body")]

    calls, error, _ = await execute(responses, sleeps)

    assert isinstance(error, UnexpectedStatusError)
    assert error.status_code == status
    assert error.body == "bad request body"
    assert "bad request body" in error.message
    assert len(calls) == 1
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_transport_errors_are_retried(sleeps):
    responses = [httpx.ConnectError("refused"), httpx.Response(200, content=b"ok")]

    calls, status, body = await execute(responses, sleeps)

    assert status == 200
    assert body == b"ok"
    assert len(calls) == 2
    assert sleeps.delays == [0.5]


@pytest.mark.asyncio
async def test_transport_errors_exhaust_retries(sleeps):
    responses = [httpx.ConnectError("refused") for _ in range(3)]

    calls, error, _ = await execute(responses, sleeps, max_retries=2)

    assert isinstance(error, TransportError)
    assert "ConnectError" in error.message
    assert isinstance(error.__cause__, httpx.ConnectError)
    assert len(calls) == 3
    assert sleeps.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retries_reuse_the_same_body(sleeps):
    responses = [httpx.Response(503), httpx.Response(200)]

    calls, _, _ = await execute(responses, sleeps)

    assert calls[0].content == calls[1].content


@pytest.mark.asyncio
async def test_non_ascii_retry_after_falls_back_to_backoff(sleeps):
    responses = [
        httpx.Response(503, headers=[(b"Retry-After", "²".encode("utf-8"))]),
        httpx.Response(200, content=b"ok"),
    ]

    calls, status, body = await execute(responses, sleeps)

    assert status == 200
    assert body == b"ok"
    assert len(calls) == 2
    assert sleeps.delays == [0.5]
