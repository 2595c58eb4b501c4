"""Exponential backoff with jitter for idempotent remote reads.

Retries on transient upstream statuses (429, 500, 502, 503, 504) and
connection errors. Respects Retry-After. Logs each retry attempt.
Never wrap a create call with this: StopSuite creations are not idempotent.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from typing import Any, Callable

from dispatch_sync.clients.errors import UpstreamStatusError, UpstreamUnavailable

logger = logging.getLogger(__name__)

# HTTP status codes that trigger a retry
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def retry_with_backoff(
    max_retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: float = 0.3,
) -> Callable:
    """Decorator: retry an async function with exponential backoff + jitter.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay cap in seconds.
        jitter: Jitter factor (0.0-1.0).
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return await fn(*args, **kwargs)
                except UpstreamStatusError as e:
                    if e.status not in RETRYABLE_STATUS_CODES or attempt == max_retries:
                        raise
                    delay = compute_delay(attempt, base_delay, max_delay, jitter, e.retry_after)
                    logger.warning(
                        "Retry %d/%d for %s (HTTP %d), waiting %.1fs",
                        attempt + 1,
                        max_retries,
                        fn.__name__,
                        e.status,
                        delay,
                    )
                    await asyncio.sleep(delay)
                except UpstreamUnavailable as e:
                    if attempt == max_retries:
                        raise
                    delay = compute_delay(attempt, base_delay, max_delay, jitter)
                    logger.warning(
                        "Retry %d/%d for %s (connection error: %s), waiting %.1fs",
                        attempt + 1,
                        max_retries,
                        fn.__name__,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float,
    retry_after: str | None = None,
) -> float:
    """Compute delay with exponential backoff + jitter, respecting Retry-After."""
    if retry_after:
        try:
            return min(float(retry_after), max_delay)
        except ValueError:
            pass

    delay = min(base_delay * (2**attempt), max_delay)
    jitter_amount = delay * jitter
    delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)
