from __future__ import annotations

import httpx
import pytest

from catalog_sync.services.http_retry import backoff_seconds, request_with_retry


async def _no_sleep(_seconds: float) -> None:
    return None


def test_backoff_doubles_up_to_cap() -> None:
    assert [backoff_seconds(a) for a in range(3)] == [0.5, 1.0, 2.0]
    assert backoff_seconds(10) == 10.0


@pytest.mark.asyncio
async def test_retries_transient_status_then_succeeds() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.test") as client:
        r = await request_with_retry(client, "GET", "/x", max_retries=3, sleep=_no_sleep)

    assert r.status_code == 200
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_returns_last_transient_response_when_retries_run_out() -> None:
    delays: list[float] = []

    async def _record(seconds: float) -> None:
        delays.append(seconds)

    transport = httpx.MockTransport(lambda request: httpx.Response(429))
    async with httpx.AsyncClient(transport=transport, base_url="https://api.test") as client:
        r = await request_with_retry(client, "POST", "/x", max_retries=2, sleep=_record)

    assert r.status_code == 429
    assert delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(400, text="bad request")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.test") as client:
        r = await request_with_retry(client, "GET", "/x", max_retries=3, sleep=_no_sleep)

    assert r.status_code == 400
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_connection_errors_are_reraised_after_last_attempt() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.test") as client:
        with pytest.raises(httpx.ConnectError):
            await request_with_retry(client, "GET", "/x", max_retries=1, sleep=_no_sleep)

    assert calls["n"] == 2
