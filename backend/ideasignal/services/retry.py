"""Retry with exponential backoff.

A plain sequential loop: each attempt is awaited before the next one starts,
and the backoff sleep only suspends the retrying call, never its siblings in
a fan-out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from ..agents.market_validation.http_client import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = RetryConfig.MAX_RETRIES,
    base_delay: float = RetryConfig.BASE_DELAY,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn()`` up to *max_retries* times.

    Sleeps ``base_delay * 2 ** attempt`` seconds after each failed attempt
    except the last, then re-raises the last error.  Errors outside
    *retry_on* propagate immediately.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be >= 1")

    for attempt in range(max_retries):
        try:
            return await fn()
        except retry_on as exc:
            if attempt == max_retries - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.debug(
                "Attempt %d/%d failed (%s) — retrying in %.2fs",
                attempt + 1, max_retries, exc, delay,
            )
            await sleep(delay)
    raise AssertionError("unreachable: max_retries >= 1")
