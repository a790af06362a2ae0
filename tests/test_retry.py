# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Unit Tests for the retry/backoff policy
"""

import asyncio

import pytest

from hookflow.engine.exceptions import NodeConfigurationError, TransientNodeError
from hookflow.engine.models import RetryConfig
from hookflow.engine.retry import RetryPolicy, is_retryable


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers the requested delays"""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def flaky(failures: int, error_factory=lambda: TransientNodeError("n1", "upstream 503")):
    state = {"calls": 0}

    async def func():
        state["calls"] += 1
        if state["calls"] <= failures:
            raise error_factory()
        return {"ok": True}

    return func, state


class TestDelays:

    def test_exponential_schedule(self):
        policy = RetryPolicy(RetryConfig(max_attempts=5, initial_delay_ms=100, backoff_multiplier=2))

        assert [policy.delay_ms(n) for n in range(1, 6)] == [0, 100, 200, 400, 800]

    def test_max_delay_cap(self):
        policy = RetryPolicy(RetryConfig(max_attempts=5, initial_delay_ms=1000, backoff_multiplier=10, max_delay_ms=5000))

        assert policy.delay_ms(4) == 5000

    def test_zero_attempts_means_one(self):
        assert RetryPolicy(RetryConfig(max_attempts=0)).max_attempts == 1
        assert RetryPolicy().max_attempts == 1


class TestRun:

    @pytest.mark.asyncio
    async def test_succeeds_after_retries(self):
        """Test that two failures then a success waits 100ms then 200ms"""
        sleep = SleepRecorder()
        policy = RetryPolicy(RetryConfig(max_attempts=3, initial_delay_ms=100, backoff_multiplier=2), sleep=sleep)
        func, state = flaky(2)

        outcome = await policy.run(func, node_id="n1")

        assert outcome.succeeded
        assert outcome.output == {"ok": True}
        assert outcome.attempts == 3
        assert outcome.retry_attempts == 2
        assert outcome.delays_ms == [100, 200]
        assert sleep.calls == [0.1, 0.2]
        assert state["calls"] == 3

    @pytest.mark.asyncio
    async def test_exhausted_attempts_return_last_error(self):
        sleep = SleepRecorder()
        policy = RetryPolicy(RetryConfig(max_attempts=2, initial_delay_ms=10), sleep=sleep)
        func, state = flaky(5)

        outcome = await policy.run(func)

        assert not outcome.succeeded
        assert isinstance(outcome.error, TransientNodeError)
        assert outcome.attempts == 2
        assert state["calls"] == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_stops_immediately(self):
        sleep = SleepRecorder()
        policy = RetryPolicy(RetryConfig(max_attempts=4), sleep=sleep)
        func, state = flaky(5, lambda: NodeConfigurationError("n1", "API key missing"))

        outcome = await policy.run(func)

        assert outcome.attempts == 1
        assert sleep.calls == []
        assert state["calls"] == 1

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        async def cancelled():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await RetryPolicy(RetryConfig(max_attempts=3), sleep=SleepRecorder()).run(cancelled)


class TestClassification:

    def test_is_retryable(self):
        assert is_retryable(TransientNodeError("n1", "boom"))
        assert not is_retryable(TransientNodeError("n1", "bad request", retryable=False))
        assert not is_retryable(NodeConfigurationError("n1", "missing"))
        assert is_retryable(RuntimeError("unexpected"))
