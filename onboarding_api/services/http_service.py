"""Outbound HTTP with retry for the email, bot-check and geocoding providers."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})
MAX_RETRY_AFTER_SECONDS = 10.0


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a provider call and how long to wait in between."""

    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 4.0
    retry_on: frozenset[int] = field(default=TRANSIENT_STATUSES)

    def delay_for(self, attempt: int, response: httpx.Response | None = None) -> float:
        retry_after = _retry_after_seconds(response)
        if retry_after is not None:
            return min(retry_after, MAX_RETRY_AFTER_SECONDS)
        delay = min(self.max_delay, self.base_delay * (2**attempt))
        return delay + random.uniform(0, delay / 2) if delay else 0.0


QUICK_RETRY = RetryPolicy(attempts=2, base_delay=0.25, max_delay=1.0)


def _retry_after_seconds(response: httpx.Response | None) -> float | None:
    if response is None:
        return None
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


async def send_with_retries(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: RetryPolicy = RetryPolicy(),
    **request_kwargs,
) -> httpx.Response:
    """
    Send a request, retrying transport errors and transient statuses.

    The last response is returned as-is once attempts run out; the last
    transport error is re-raised.
    """
    last_attempt = max(policy.attempts, 1) - 1
    attempt = 0
    while True:
        try:
            response = await client.request(method, url, **request_kwargs)
        except httpx.TransportError:
            if attempt >= last_attempt:
                raise
            logger.warning("%s %s failed (attempt %d), retrying", method, url, attempt + 1, exc_info=True)
            delay = policy.delay_for(attempt)
        else:
            if response.status_code not in policy.retry_on or attempt >= last_attempt:
                return response
            logger.warning(
                "%s %s returned %s (attempt %d), retrying", method, url, response.status_code, attempt + 1
            )
            delay = policy.delay_for(attempt, response)

        if delay:
            await asyncio.sleep(delay)
        attempt += 1
