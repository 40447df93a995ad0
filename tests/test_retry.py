"""Retry tests (synchronous wrappers around asyncio.run)."""

from __future__ import annotations

import asyncio

import pytest

from tasksync import retry


class _StatusError(RuntimeError):
    def __init__(self, status: int):
        super().__init__(f"status {status}")
        self.status = status


def _recorder() -> tuple[list[float], retry.SleepFn]:
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    return delays, sleep


def test_backoff_doubles():
    cfg = retry.RetryConfig(max_retries=3, retry_delay=0.5)
    assert [retry.compute_backoff(n, cfg) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


def test_transient_then_success():
    attempts: list[int] = []
    delays, sleep = _recorder()

    async def fn() -> str:
        attempts.append(1)
        if len(attempts) < 2:
            raise _StatusError(503)
        return "ok"

    cfg = retry.RetryConfig(max_retries=3, retry_delay=1.0)
    assert asyncio.run(retry.run_with_retries(fn, cfg=cfg, sleep=sleep)) == "ok"
    assert len(attempts) == 2
    assert delays == [1.0]


def test_exhaustion_attempts_max_retries_plus_one():
    attempts: list[int] = []
    delays, sleep = _recorder()

    async def fn() -> None:
        attempts.append(1)
        raise _StatusError(500 + len(attempts))

    cfg = retry.RetryConfig(max_retries=3, retry_delay=1.0)
    with pytest.raises(_StatusError) as exc_info:
        asyncio.run(retry.run_with_retries(fn, cfg=cfg, sleep=sleep))
    assert len(attempts) == 4
    assert exc_info.value.status == 504
    assert delays == [1.0, 2.0, 4.0]


def test_client_errors_are_not_retried():
    attempts: list[int] = []
    delays, sleep = _recorder()

    async def fn() -> None:
        attempts.append(1)
        raise _StatusError(404)

    with pytest.raises(_StatusError):
        asyncio.run(retry.run_with_retries(fn, cfg=retry.RetryConfig(), sleep=sleep))
    assert len(attempts) == 1
    assert delays == []


def test_too_many_requests_is_retried():
    attempts: list[int] = []
    _, sleep = _recorder()

    async def fn() -> None:
        attempts.append(1)
        raise _StatusError(429)

    with pytest.raises(_StatusError):
        asyncio.run(
            retry.run_with_retries(fn, cfg=retry.RetryConfig(max_retries=2), sleep=sleep)
        )
    assert len(attempts) == 3


def test_transport_errors_are_retryable_but_logic_errors_are_not():
    assert retry.is_retryable(ConnectionError("reset"))
    assert retry.is_retryable(TimeoutError())
    assert not retry.is_retryable(ValueError("bad input"))
    assert not retry.is_retryable(_StatusError(401))


def test_zero_retries_means_single_attempt():
    attempts: list[int] = []
    _, sleep = _recorder()

    async def fn() -> None:
        attempts.append(1)
        raise _StatusError(500)

    with pytest.raises(_StatusError):
        asyncio.run(
            retry.run_with_retries(fn, cfg=retry.RetryConfig(max_retries=0), sleep=sleep)
        )
    assert attempts == [1]
