"""Centralized retry / backoff helpers.

``run_with_retries`` awaits a coroutine factory up to ``max_retries + 1``
times. Failures carrying a 4xx status (other than 429) propagate immediately;
everything else (429, 5xx, transport errors without a status) is retried
after ``retry_delay * 2 ** (attempt - 1)`` seconds. Once the budget is spent
the last error propagates unchanged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .errors import is_retryable_status, redact
from .logging import get_logger

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RetryConfig:
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds


def is_retryable(exc: BaseException) -> bool:
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return is_retryable_status(status)
    # transport failures; requests exceptions derive from OSError
    return isinstance(exc, OSError)


def compute_backoff(attempt: int, cfg: RetryConfig) -> float:
    return cfg.retry_delay * (2 ** (attempt - 1))


async def run_with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    cfg: RetryConfig | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(0, cfg.max_retries) + 1
    last_exc: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as exc:
            last_exc = exc
            if not is_retryable(exc):
                raise
            if attempt < attempts:
                delay = compute_backoff(attempt, cfg)
                get_logger().warning(
                    "API call failed, retrying",
                    attempt=attempt,
                    max_retries=cfg.max_retries,
                    delay_s=delay,
                    error=redact(str(exc)),
                )
                await sleep(delay)
    assert last_exc is not None  # nosec B101 - loop always runs at least once
    raise last_exc


__all__ = ["RetryConfig", "run_with_retries", "is_retryable", "compute_backoff"]
