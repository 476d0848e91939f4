"""HTTP helpers with retry/backoff for the AI oracle and queue re-sends."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff policy shared by every retrying caller."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 4.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), capped at max_delay."""
        delay = min(self.max_delay, self.base_delay * (2**attempt))
        if delay and self.jitter:
            delay = delay + random.uniform(0, delay / 2)
        return delay


# Queue re-send delays are whole seconds (5s doubling, capped at 5 minutes).
QUEUE_BACKOFF_POLICY = RetryPolicy(max_attempts=6, base_delay=5, max_delay=300)


def calculate_backoff_seconds(
    attempt: int, policy: RetryPolicy = QUEUE_BACKOFF_POLICY
) -> int:
    """Delay in seconds before re-sending a job on its ``attempt``-th (1-based) try."""
    delay = policy.delay_for(max(0, attempt - 1))
    return int(min(policy.max_delay, delay))


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    policy: RetryPolicy | None = None,
    retry_statuses: frozenset[int] | set[int] | None = None,
) -> httpx.Response:
    """Execute an HTTP request, retrying transport errors and transient statuses."""
    policy = policy or RetryPolicy()
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES
    max_attempts = max(1, policy.max_attempts)

    for attempt in range(max_attempts):
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if attempt >= max_attempts - 1:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "HTTP request failed (attempt %s/%s), retrying",
                attempt + 1,
                max_attempts,
                exc_info=exc,
            )
            if delay:
                await asyncio.sleep(delay)
            continue

        if response.status_code in statuses and attempt < max_attempts - 1:
            delay = policy.delay_for(attempt)
            logger.warning(
                "HTTP request returned %s (attempt %s/%s), retrying",
                response.status_code,
                attempt + 1,
                max_attempts,
            )
            if delay:
                await asyncio.sleep(delay)
            continue

        return response

    return response
