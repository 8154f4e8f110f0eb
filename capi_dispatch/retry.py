"""Bounded retry with exponential backoff for outbound calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from capi_dispatch.constants import DELIVERY_ATTEMPTS, DELIVERY_BASE_DELAY_S

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(attempt: int, base_delay_s: float = DELIVERY_BASE_DELAY_S) -> float:
    """Exponential backoff for a 0-based attempt: 0.4s, 0.8s, 1.6s, ..."""
    return base_delay_s * (2.0 ** max(0, attempt))


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    attempts: int = DELIVERY_ATTEMPTS,
    base_delay_s: float = DELIVERY_BASE_DELAY_S,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Run ``fn`` up to ``attempts`` times, re-raising the last failure.

    The whole operation is retried; exceptions not listed in ``retry_on``
    propagate on the first occurrence.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(attempts):
        try:
            return await fn()
        except retry_on as exc:
            if attempt + 1 >= attempts:
                logger.error("%s failed after %d attempts: %s", label, attempts, exc)
                raise
            delay = compute_backoff(attempt, base_delay_s)
            logger.warning(
                "%s attempt %d/%d failed (retry in %.1fs): %s", label, attempt + 1, attempts, delay, exc
            )
            await sleep(delay)

    raise AssertionError("unreachable")
