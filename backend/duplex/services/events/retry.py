# backend/duplex/services/events/retry.py
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from duplex.core.exceptions import MalformedEventError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _is_retryable_exception(e: Exception) -> bool:
    # a broken payload will be just as broken on the next attempt
    if isinstance(e, (MalformedEventError, ValueError, TypeError, KeyError)):
        return False
    if isinstance(e, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    name = type(e).__name__.lower()
    msg = str(e).lower()
    retry_keywords = [
        "timeout", "timed out", "temporarily unavailable",
        "connection reset", "connect", "socket",
        "server disconnected", "read error",
    ]
    return any(k in name for k in ["timeout", "connect", "network"]) or any(k in msg for k in retry_keywords)


async def async_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    jitter: float = 0.25,
    retry_if: Callable[[Exception], bool] = _is_retryable_exception,
) -> T:
    """Await fn() with exponential backoff on transient collaborator errors."""
    last_exc: Optional[Exception] = None

    for i in range(attempts):
        try:
            return await fn()
        except Exception as e:
            last_exc = e
            if i == attempts - 1 or not retry_if(e):
                raise

            delay = min(max_delay, base_delay * (2 ** i))
            delay = delay * (1.0 + random.uniform(-jitter, jitter))
            logger.debug("Retrying after %s (attempt %d/%d)", type(e).__name__, i + 1, attempts)
            await asyncio.sleep(max(0.0, delay))

    raise last_exc or RuntimeError("async_retry failed without exception")
