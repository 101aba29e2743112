from __future__ import annotations

import asyncio

import pytest
from catalog_fakes import RecordingSleep

from backend.app.services.catalog_client import UpstreamRequestError, UpstreamStatusError
from backend.app.services.retry import RetryExecutor, backoff_delay


class _Flaky:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise UpstreamRequestError(f"failure {self.calls}")
        return "ok"


def test_backoff_delay_doubles_per_attempt() -> None:
    assert [backoff_delay(index, 1.0) for index in range(4)] == [1.0, 2.0, 4.0, 8.0]
    assert backoff_delay(1, 0.5) == 1.0
    assert backoff_delay(-1, 1.0) == 1.0


def test_execute_returns_after_transient_failures(recording_sleep: RecordingSleep) -> None:
    operation = _Flaky(failures=2)
    executor = RetryExecutor(sleep=recording_sleep)

    result = asyncio.run(executor.execute(operation, 3, 1.0))

    assert result == "ok"
    assert operation.calls == 3
    assert recording_sleep.delays == [1.0, 2.0]


def test_execute_reraises_last_error_unchanged(recording_sleep: RecordingSleep) -> None:
    last_error = UpstreamStatusError("HTTP 503", status_code=503)
    calls = 0

    async def always_fails() -> str:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise UpstreamRequestError("transient")
        raise last_error

    executor = RetryExecutor(sleep=recording_sleep)
    with pytest.raises(UpstreamStatusError) as exc_info:
        asyncio.run(executor.execute(always_fails, 2, 1.0))

    assert exc_info.value is last_error
    assert calls == 3
    assert recording_sleep.delays == [1.0, 2.0]


def test_execute_with_zero_retries_makes_single_attempt(recording_sleep: RecordingSleep) -> None:
    operation = _Flaky(failures=1)
    executor = RetryExecutor(sleep=recording_sleep)

    with pytest.raises(UpstreamRequestError):
        asyncio.run(executor.execute(operation, 0, 0.5))

    assert operation.calls == 1
    assert recording_sleep.delays == []
