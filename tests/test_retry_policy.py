"""
测试重试策略
"""

import pytest

from exceptions import APIError, RequestTerminatedError
from services.retry_policy import RetryPolicy, exponential_backoff, linear_backoff


class Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def flaky(failures, error_factory, result="ok"):
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise error_factory()
        return result

    return operation, calls


def test_backoff_functions():
    assert [exponential_backoff(a, 1.0) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]
    assert [linear_backoff(a, 0.5) for a in (1, 2, 3)] == [0.5, 1.0, 1.5]


def test_invalid_max_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_jitter_bounds():
    policy = RetryPolicy(base_delay=1.0, jitter=1.0)
    for _ in range(20):
        assert 1.0 <= policy.delay_for(1) <= 2.0


@pytest.mark.asyncio
async def test_retries_then_succeeds():
    sleep = Recorder()
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleep)
    operation, calls = flaky(2, lambda: APIError("busy", is_retryable=True))

    assert await policy.run(operation) == "ok"
    assert calls["count"] == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_raises_last_error():
    policy = RetryPolicy(max_attempts=2, sleep=Recorder())
    operation, calls = flaky(5, lambda: APIError("busy", is_retryable=True))

    with pytest.raises(APIError, match="busy"):
        await policy.run(operation, description="chunk 1")
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_non_retryable_raises_immediately():
    sleep = Recorder()
    policy = RetryPolicy(sleep=sleep)
    operation, calls = flaky(1, RequestTerminatedError)

    with pytest.raises(RequestTerminatedError):
        await policy.run(operation)
    assert calls["count"] == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_should_stop_halts_retries():
    policy = RetryPolicy(sleep=Recorder())
    operation, calls = flaky(3, lambda: APIError("busy", is_retryable=True))

    with pytest.raises(APIError):
        await policy.run(operation, should_stop=lambda: True)
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_custom_predicate_and_backoff():
    sleep = Recorder()
    policy = RetryPolicy(
        max_attempts=3,
        base_delay=0.5,
        is_retryable=lambda e: isinstance(e, ConnectionError),
        backoff=linear_backoff,
        sleep=sleep,
    )
    operation, _ = flaky(2, ConnectionError)
    assert await policy.run(operation) == "ok"
    assert sleep.delays == [0.5, 1.0]
