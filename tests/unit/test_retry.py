"""
Unit Tests for RetryPolicy
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from codegraph.config.settings import ResilienceSettings
from codegraph.core.types.common_types import ServiceType
from codegraph.utils.exceptions import (
    CircuitOpenError,
    InvalidInputError,
    NotFoundError,
    RetryExhaustedError,
    TransientError,
)
from codegraph.utils.retry import RetryPolicy, is_retryable, with_retry


def no_wait_policy(max_retries=2, **kwargs):
    return RetryPolicy(max_retries=max_retries, base_delay=0.0, jitter=0.0, **kwargs)


class TestErrorClassification:
    """Test which errors are retried."""

    @pytest.mark.parametrize("error", [
        TransientError("reset"),
        asyncio.TimeoutError(),
        ConnectionError("refused"),
        httpx.ConnectError("refused"),
    ])
    def test_retryable(self, error):
        assert is_retryable(error)

    @pytest.mark.parametrize("error", [
        InvalidInputError("bad"),
        NotFoundError("missing"),
        CircuitOpenError("open"),
        RetryExhaustedError("spent", attempts=3),
        ValueError("bug"),
    ])
    def test_not_retryable(self, error):
        assert not is_retryable(error)


class TestRetryExecution:
    """Test attempt counting and exhaustion."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        func = AsyncMock(side_effect=[TransientError("1"), TransientError("2"), "ok"])
        assert await no_wait_policy().execute(func) == "ok"
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_exhaustion_chains_last_error(self):
        last = TransientError("third")
        func = AsyncMock(side_effect=[TransientError("first"), TransientError("second"), last])

        with pytest.raises(RetryExhaustedError) as exc_info:
            await no_wait_policy().execute(func)

        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is last

    @pytest.mark.asyncio
    async def test_fatal_error_not_retried(self):
        func = AsyncMock(side_effect=InvalidInputError("bad query"))
        with pytest.raises(InvalidInputError):
            await no_wait_policy().execute(func)
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self):
        func = AsyncMock(side_effect=TransientError("down"))
        with pytest.raises(RetryExhaustedError):
            await no_wait_policy(max_retries=0).execute(func)
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self):
        async def hang():
            await asyncio.sleep(10)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await no_wait_policy(max_retries=1, timeout=0.01).execute(hang)
        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_decorator(self):
        calls = []

        @with_retry(no_wait_policy(max_retries=1))
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise TransientError("once")
            return "done"

        assert await flaky() == "done"
        assert len(calls) == 2


class TestBackoff:
    """Test delay calculation and per-service defaults."""

    def test_exponential_growth(self):
        policy = RetryPolicy(base_delay=0.1, multiplier=2.0, jitter=0.0)
        assert [policy.delay_for(i) for i in range(3)] == pytest.approx([0.1, 0.2, 0.4])

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=0.0)
        assert policy.delay_for(10) == 5.0

    def test_jitter_only_adds(self):
        policy = RetryPolicy(base_delay=1.0, jitter=0.25)
        for _ in range(20):
            assert 1.0 <= policy.delay_for(0) <= 1.25

    def test_per_service_defaults(self):
        resilience = ResilienceSettings()
        llm = RetryPolicy.for_service(ServiceType.LLM, resilience)
        graph = RetryPolicy.for_service(ServiceType.GRAPH, resilience)
        reasoner = RetryPolicy.for_service(ServiceType.REASONER, resilience)

        assert llm.max_attempts == 4
        assert llm.timeout == 60.0
        assert graph.max_attempts == 3
        assert graph.timeout == 10.0
        assert reasoner.timeout == 30.0
        assert graph.base_delay == pytest.approx(0.1)
