"""Tests for the retry policy and retrier."""

import asyncio

import pytest
from pydantic import ValidationError

from airgap.domain.shared.error import InvalidReference, MissingDependency, RetryExhausted
from airgap.domain.shared.retry import Retrier, RetryPolicy
from tests.fakes import RecordingSleep


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert (policy.max_attempts, policy.base_delay, policy.max_delay) == (5, 1.0, 20.0)

    def test_backoff_doubles_and_caps(self):
        policy = RetryPolicy(max_attempts=8, base_delay=1.0, max_delay=20.0)
        assert [policy.delay_for(n) for n in range(1, 8)] == [1, 2, 4, 8, 16, 20, 20]

    def test_jitter_stays_within_bound(self):
        policy = RetryPolicy(base_delay=2.0, max_delay=3.0, jitter=True)
        for attempt in range(1, 6):
            assert 0 <= policy.delay_for(attempt) <= 3.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)

    def test_rejects_cap_below_base(self):
        with pytest.raises(ValidationError):
            RetryPolicy(base_delay=5.0, max_delay=1.0)


class TestRetrier:
    async def test_returns_first_success(self):
        sleep = RecordingSleep()
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            return "ok"

        assert await Retrier(RetryPolicy(), sleep=sleep).execute(op) == "ok"
        assert calls == 1
        assert sleep.delays == []

    async def test_succeeds_after_failures(self):
        sleep = RecordingSleep()
        attempts = 0

        async def op():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise ConnectionError("registry timeout")
            return attempts

        result = await Retrier(RetryPolicy(), sleep=sleep).execute(op)
        assert result == 3
        assert sleep.delays == [1.0, 2.0]

    async def test_exhaustion_makes_exactly_max_attempts(self):
        sleep = RecordingSleep()
        attempts = 0

        async def op():
            nonlocal attempts
            attempts += 1
            raise ConnectionError(f"failure {attempts}")

        policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=20.0)
        with pytest.raises(RetryExhausted) as exc:
            await Retrier(policy, sleep=sleep).execute(op, describe="Pull of busybox")

        assert attempts == 3
        assert sleep.delays == [1.0, 2.0]
        assert exc.value.attempts == 3
        assert str(exc.value.last_error) == "failure 3"
        assert "Pull of busybox" in exc.value.message

    async def test_single_attempt_chains_cause_without_sleeping(self):
        sleep = RecordingSleep()
        cause = ConnectionError("refused")

        async def op():
            raise cause

        with pytest.raises(RetryExhausted) as exc:
            await Retrier(RetryPolicy(max_attempts=1), sleep=sleep).execute(op)
        assert exc.value.__cause__ is cause
        assert exc.value.attempts == 1
        assert sleep.delays == []

    async def test_total_sleep_is_bounded(self):
        sleep = RecordingSleep()

        async def op():
            raise OSError("down")

        policy = RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=20.0)
        with pytest.raises(RetryExhausted):
            await Retrier(policy, sleep=sleep).execute(op)
        assert sum(sleep.delays) <= policy.max_delay * (policy.max_attempts - 1)

    @pytest.mark.parametrize(
        "error",
        [InvalidReference("x!", "bad"), MissingDependency("zstd", "compression")],
    )
    async def test_non_retryable_errors_propagate_immediately(self, error):
        sleep = RecordingSleep()
        attempts = 0

        async def op():
            nonlocal attempts
            attempts += 1
            raise error

        with pytest.raises(type(error)):
            await Retrier(RetryPolicy(), sleep=sleep).execute(op)
        assert attempts == 1
        assert sleep.delays == []

    async def test_on_retry_callback(self):
        seen = []
        attempts = 0

        async def op():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ConnectionError("once")

        await Retrier(RetryPolicy(), sleep=RecordingSleep()).execute(
            op, on_retry=lambda n, delay, err: seen.append((n, delay, str(err)))
        )
        assert seen == [(1, 1.0, "once")]

    async def test_cancellation_during_backoff(self):
        async def op():
            raise ConnectionError("down")

        retrier = Retrier(RetryPolicy(base_delay=10.0, max_delay=10.0))
        task = asyncio.create_task(retrier.execute(op))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
