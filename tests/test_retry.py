"""
Tests for the retry executor.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, call, patch

from connectors.errors import (
    AuthenticationError,
    NetworkError,
    RetryExhaustedError,
    UpstreamError,
)
from connectors.models import BackoffStrategy, RetryPolicy
from connectors.retry import compute_delay_ms, execute_with_retry


def _failing_then(results):
    """Attempt function that raises / returns the given items in order."""
    seen = []

    async def attempt(n):
        seen.append(n)
        item = results[len(seen) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    return attempt, seen


class TestComputeDelay:
    def test_linear(self):
        policy = RetryPolicy(max_attempts=4, base_delay_ms=100, backoff=BackoffStrategy.LINEAR)
        assert [compute_delay_ms(policy, n) for n in range(3)] == [100, 200, 300]

    def test_exponential(self):
        policy = RetryPolicy(max_attempts=4, base_delay_ms=100, backoff=BackoffStrategy.EXPONENTIAL)
        assert [compute_delay_ms(policy, n) for n in range(4)] == [100, 200, 400, 800]


class TestExecuteWithRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_success_has_zero_retries(self):
        attempt, seen = _failing_then(["ok"])
        result, retries = await execute_with_retry(attempt, RetryPolicy(max_attempts=3))
        assert result == "ok"
        assert retries == 0
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_permanent_503_exhausts_with_exponential_delays(self):
        policy = RetryPolicy(max_attempts=4, base_delay_ms=50, backoff=BackoffStrategy.EXPONENTIAL)
        attempt, seen = _failing_then([UpstreamError(503, "svc")] * 4)

        with patch("connectors.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(RetryExhaustedError) as info:
                await execute_with_retry(attempt, policy)

        assert seen == [1, 2, 3, 4]
        assert info.value.retry_count == 3
        assert isinstance(info.value.last_error, UpstreamError)
        assert info.value.last_error.status == 503
        assert sleep.await_args_list == [call(0.05), call(0.1), call(0.2)]

    @pytest.mark.asyncio
    async def test_linear_recovers_on_third_attempt(self):
        policy = RetryPolicy(max_attempts=3, base_delay_ms=1000, backoff=BackoffStrategy.LINEAR)
        attempt, _ = _failing_then([UpstreamError(500), UpstreamError(500), "done"])

        with patch("connectors.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result, retries = await execute_with_retry(attempt, policy)

        assert result == "done"
        assert retries == 2
        assert sleep.await_args_list == [call(1.0), call(2.0)]

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self):
        policy = RetryPolicy(max_attempts=2, base_delay_ms=0)
        attempt, _ = _failing_then([NetworkError("timeout", "slow"), "ok"])
        with patch("connectors.retry.asyncio.sleep", new_callable=AsyncMock):
            result, retries = await execute_with_retry(attempt, policy)
        assert (result, retries) == ("ok", 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    async def test_non_retryable_status_surfaces_immediately(self, status):
        attempt, seen = _failing_then([UpstreamError(status)])
        with patch("connectors.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(UpstreamError) as info:
                await execute_with_retry(attempt, RetryPolicy(max_attempts=5))
        assert info.value.status == status
        assert seen == [1]
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_connector_errors_propagate(self):
        attempt, _ = _failing_then([AuthenticationError("expired")])
        with pytest.raises(AuthenticationError):
            await execute_with_retry(attempt, RetryPolicy(max_attempts=3))

    @pytest.mark.asyncio
    async def test_without_policy_single_attempt_unwrapped(self):
        attempt, seen = _failing_then([UpstreamError(503)])
        with pytest.raises(UpstreamError):
            await execute_with_retry(attempt, None)
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_cancellation_during_backoff_skips_retry(self):
        calls = []

        async def attempt(n):
            calls.append(n)
            raise UpstreamError(503)

        policy = RetryPolicy(max_attempts=3, base_delay_ms=60_000)
        task = asyncio.create_task(execute_with_retry(attempt, policy))
        while not calls:
            await asyncio.sleep(0)
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls == [1]
