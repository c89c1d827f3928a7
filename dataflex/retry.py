"""
DataFlex — Retry
─────────────────
Exponential backoff with jitter for gateway calls:

  delay(attempt) = base_delay × 2^attempt + uniform(0, 1)   seconds

The request cache never retries on its own; callers wrap their fetch
function with this when they want retries.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

import httpx

log = logging.getLogger("dfx.retry")

# PostgREST codes for an expired / invalid JWT
AUTH_ERROR_CODES = {"PGRST301", "PGRST302"}
CONNECTION_MARKERS = ("network", "connection", "timeout", "jwt", "expired")


def is_connection_error(exc: BaseException) -> bool:
    """True for failures worth retrying: transport errors, timeouts, auth expiry."""
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    if getattr(exc, "code", None) in AUTH_ERROR_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in CONNECTION_MARKERS)


def backoff_delay(attempt: int, base_delay: float) -> float:
    return base_delay * (2 ** attempt) + random.uniform(0, 1)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Any]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Run `operation` up to max_retries + 1 times.
    Errors rejected by `should_retry` are raised immediately.
    """
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == max_retries or (should_retry and not should_retry(e)):
                raise
            delay = backoff_delay(attempt, base_delay)
            log.warning(f"Attempt {attempt + 1} failed ({e}), retrying in {delay:.1f}s")
            await sleep(delay)
