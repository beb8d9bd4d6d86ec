"""Bounded retry driven by the :class:`~faultline.errors.Transient` capability."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, TypeVar, cast

import msgspec

from .errors import is_temporary
from .observability import Observability

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF = 1.0

Sleep = Callable[[float], Awaitable[Any]]


class RetryPolicy(msgspec.Struct, frozen=True):
    """How many times to call an operation and how long to wait in between."""

    attempts: int = DEFAULT_ATTEMPTS
    backoff: float = DEFAULT_BACKOFF

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("RetryPolicy.attempts must be at least 1")
        if self.backoff < 0:
            raise ValueError("RetryPolicy.backoff must not be negative")


async def retry(
    operation: Callable[[], Awaitable[T]] | Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
    observability: Observability | None = None,
) -> T:
    """Call ``operation`` until it succeeds, fails permanently, or attempts run out.

    Only errors reporting ``temporary() == True`` are retried. Every other
    error, and the last temporary one once ``policy.attempts`` calls have been
    made, propagates to the caller. Waiting suspends only the calling task.
    """

    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return cast(T, result)
        except Exception as exc:
            if attempt >= policy.attempts or not is_temporary(exc):
                raise
            if observability is not None:
                observability.record_retry(exc, attempt=attempt, attempts=policy.attempts, delay=policy.backoff)
            await sleep(policy.backoff)


__all__ = ["DEFAULT_ATTEMPTS", "DEFAULT_BACKOFF", "RetryPolicy", "retry"]
