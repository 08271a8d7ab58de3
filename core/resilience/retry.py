"""
Bounded retry with exponential backoff for coroutine calls.

Same backoff schedule as a circuit-breaker retry loop
(base * 2**attempt, capped), without the open/half-open bookkeeping: callers
here want the last error back, not a cached fallback.
"""
from __future__ import annotations
from typing import Any, Awaitable, Callable, TypeVar
import asyncio
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    backoff_base: float = 0.1,
    backoff_max: float = 5.0,
    **kwargs: Any,
) -> tuple[T, int]:
    """Await ``func(*args, **kwargs)`` up to ``max_retries + 1`` times.

    Returns ``(result, attempts)``. Re-raises the last exception when every
    attempt fails.
    """
    last_error: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            result = await func(*args, **kwargs)
            return result, attempt + 1
        except Exception as e:
            last_error = e
            if attempt < max_retries:
                backoff = min(backoff_base * (2 ** attempt), backoff_max)
                logger.warning(
                    f"Attempt {attempt + 1}/{max_retries + 1} of {getattr(func, '__name__', func)} "
                    f"failed: {e}; retrying in {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)

    assert last_error is not None
    raise last_error
