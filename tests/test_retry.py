from __future__ import annotations

import asyncio

import pytest

from core.retry import Retryable

from fakes import FakeSleep


def test_run_returns_first_value_and_sleeps_between_attempts() -> None:
    sleep = FakeSleep()
    attempts: list[int] = []

    async def action(attempt: int):
        attempts.append(attempt)
        return "found" if attempt == 3 else None

    retry = Retryable("lookup", 5, 1.5, sleep=sleep)
    assert asyncio.run(retry.run(action)) == "found"
    assert attempts == [1, 2, 3]
    assert sleep.calls == [1.5, 1.5]


def test_run_gives_up_after_the_budget() -> None:
    sleep = FakeSleep()
    exhausted: list[bool] = []

    async def action(attempt: int):
        return None

    retry = Retryable("lookup", 3, 1.0, sleep=sleep, on_exhausted=lambda: exhausted.append(True))
    assert asyncio.run(retry.run(action)) is None
    assert retry.exhausted
    assert len(sleep.calls) == 2
    assert exhausted == [True]


def test_listed_exceptions_count_as_failed_attempts() -> None:
    calls: list[int] = []

    async def action(attempt: int):
        calls.append(attempt)
        if attempt == 1:
            raise ConnectionError("not yet")
        return 42

    retry = Retryable("probe", 2, 0.0, retry_on=(ConnectionError,), sleep=FakeSleep())
    assert asyncio.run(retry.run(action)) == 42
    assert calls == [1, 2]


def test_other_exceptions_propagate() -> None:
    async def action(attempt: int):
        raise KeyError("boom")

    retry = Retryable("probe", 2, 0.0, retry_on=(ConnectionError,), sleep=FakeSleep())
    with pytest.raises(KeyError):
        asyncio.run(retry.run(action))


def test_consume_tracks_budget_for_external_timers() -> None:
    retry = Retryable("init", 3, 5.0)
    assert retry.consume()
    assert retry.consume()
    assert retry.remaining == 1
    assert not retry.consume()
    assert retry.exhausted
    retry.reset()
    assert retry.remaining == 3


def test_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        Retryable("never", 0, 1.0)
