from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx


logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})
BACKOFF_CAP_SECONDS = 10.0


def backoff_seconds(attempt: int, *, base: float = 0.5, cap: float = BACKOFF_CAP_SECONDS) -> float:
    return min(base * (2**attempt), cap)


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """
    Send a request, retrying timeouts, connection errors and 429/502/503/504.

    The last transient response is returned as-is once retries run out; the
    last transport error is re-raised. Other statuses are returned immediately.
    """
    attempts = max(0, int(max_retries)) + 1
    for attempt in range(attempts):
        last = attempt == attempts - 1
        try:
            response = await client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.ConnectError) as exc:
            if last:
                raise
            delay = backoff_seconds(attempt)
            logger.warning("%s %s failed (%s); retry in %.1fs (%s/%s)", method, url, exc, delay, attempt + 1, attempts)
            await sleep(delay)
            continue

        if response.status_code in RETRYABLE_STATUS_CODES and not last:
            delay = backoff_seconds(attempt)
            logger.warning(
                "%s %s returned %s; retry in %.1fs (%s/%s)",
                method,
                url,
                response.status_code,
                delay,
                attempt + 1,
                attempts,
            )
            await sleep(delay)
            continue
        return response

    raise RuntimeError(f"{method} {url} failed after retries")
