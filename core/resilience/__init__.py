"""
Resilience primitives for the discount service.

- DeadLetterQueue: park writes that failed after retries, replay them later
- retry_async: bounded exponential-backoff retry for coroutine calls
"""
from core.resilience.dlq import (
    DeadLetter,
    DeadLetterQueue,
    DLQStats,
    DLQStatus,
)
from core.resilience.retry import retry_async

__all__ = [
    "DeadLetter",
    "DeadLetterQueue",
    "DLQStats",
    "DLQStatus",
    "retry_async",
]
