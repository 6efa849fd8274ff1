"""Provider HTTP calls: retry on transient failures, give up on the rest."""

import httpx
import pytest

from onboarding_api.services.http_service import RetryPolicy, send_with_retries

NO_WAIT = RetryPolicy(attempts=3, base_delay=0, max_delay=0)


def _client(responses: list, calls: list) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        outcome = responses[min(len(calls), len(responses)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_retries_transient_status_then_succeeds():
    calls: list = []
    responses = [httpx.Response(503), httpx.Response(200, json={"ok": True})]

    async with _client(responses, calls) as client:
        response = await send_with_retries(client, "POST", "https://provider.test/send", policy=NO_WAIT)

    assert response.status_code == 200
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls: list = []

    async with _client([httpx.Response(422)], calls) as client:
        response = await send_with_retries(client, "GET", "https://provider.test/", policy=NO_WAIT)

    assert response.status_code == 422
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_last_response_returned_when_attempts_run_out():
    calls: list = []

    async with _client([httpx.Response(429, headers={"Retry-After": "0"})], calls) as client:
        response = await send_with_retries(client, "GET", "https://provider.test/", policy=NO_WAIT)

    assert response.status_code == 429
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_transport_error_reraised_after_last_attempt():
    calls: list = []
    error = httpx.ConnectError("connection refused")

    async with _client([error], calls) as client:
        with pytest.raises(httpx.ConnectError):
            await send_with_retries(client, "GET", "https://provider.test/", policy=NO_WAIT)

    assert len(calls) == 3


def test_retry_after_header_caps_delay():
    policy = RetryPolicy(base_delay=1, max_delay=2)

    assert policy.delay_for(0, httpx.Response(429, headers={"Retry-After": "3"})) == 3
    assert policy.delay_for(0, httpx.Response(429, headers={"Retry-After": "600"})) == 10
    assert 1 <= policy.delay_for(0, httpx.Response(503)) <= 1.5
