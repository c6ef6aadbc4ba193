"""
Unit Tests for ResilienceCore and GuardedGraphStore
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from codegraph.config.settings import ResilienceSettings
from codegraph.core.types.common_types import ServiceHealth, ServiceType
from codegraph.services.resilience import GuardedGraphStore, ResilienceCore
from codegraph.utils.circuit_breaker import CircuitOpenError, CircuitState
from codegraph.utils.exceptions import NotFoundError, RetryExhaustedError, TransientError


class TestResilienceCall:
    """Test retry, breaker and timeout composition."""

    @pytest.mark.asyncio
    async def test_success(self, resilience):
        func = AsyncMock(return_value=[1, 2])
        assert await resilience.call(ServiceType.VECTOR, func, "arg", limit=2) == [1, 2]
        func.assert_awaited_once_with("arg", limit=2)

    @pytest.mark.asyncio
    async def test_exhausted_retries_recorded(self, resilience):
        func = AsyncMock(side_effect=TransientError("reset"))

        with pytest.raises(RetryExhaustedError):
            await resilience.call(ServiceType.GRAPH, func)

        assert func.await_count == 2
        assert resilience.breakers.get(ServiceType.GRAPH).failure_count == 2
        assert resilience.degradation.consecutive_failures(ServiceType.GRAPH) == 1

    @pytest.mark.asyncio
    async def test_timeouts_count_against_breaker(self, resilience):
        async def hang():
            await asyncio.sleep(10)

        with pytest.raises(RetryExhaustedError):
            await resilience.call(ServiceType.LLM, hang, timeout=0.01)

        assert resilience.breakers.get(ServiceType.LLM).failure_count == 2

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits(self, resilience):
        failing = AsyncMock(side_effect=TransientError("down"))
        with pytest.raises(RetryExhaustedError):
            await resilience.call(ServiceType.GRAPH, failing)
        # Third breaker failure opens the circuit; the retry then stops on the open circuit
        with pytest.raises(CircuitOpenError):
            await resilience.call(ServiceType.GRAPH, failing)

        assert resilience.breakers.state(ServiceType.GRAPH) == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await resilience.call(ServiceType.GRAPH, AsyncMock(return_value="ok"))
        assert resilience.degradation.service_health(ServiceType.GRAPH) == ServiceHealth.DOWN

    @pytest.mark.asyncio
    async def test_not_found_is_not_a_failure(self, resilience):
        func = AsyncMock(side_effect=NotFoundError("missing"))
        with pytest.raises(NotFoundError):
            await resilience.call(ServiceType.GRAPH, func)

        assert func.await_count == 1
        assert resilience.degradation.consecutive_failures(ServiceType.GRAPH) == 0

    @pytest.mark.asyncio
    async def test_recovers_after_cooldown(self, resilience, clock):
        failing = AsyncMock(side_effect=TransientError("down"))
        for _ in range(2):
            with pytest.raises((RetryExhaustedError, CircuitOpenError)):
                await resilience.call(ServiceType.VECTOR, failing)
        assert resilience.breakers.state(ServiceType.VECTOR) == CircuitState.OPEN
        clock.advance(30.0)

        assert await resilience.call(ServiceType.VECTOR, AsyncMock(return_value="back")) == "back"
        assert resilience.degradation.service_health(ServiceType.VECTOR) == ServiceHealth.HEALTHY

    def test_from_settings(self):
        core = ResilienceCore.from_settings(ResilienceSettings())
        assert core.policies[ServiceType.LLM].max_attempts == 4
        assert core.breakers.get(ServiceType.GRAPH).failure_threshold == 5
        assert core.degradation.offline_threshold == 5


class TestGuardedGraphStore:
    """Test that graph calls are routed through the resilience core."""

    @pytest.mark.asyncio
    async def test_forwards_calls(self, graph_store, resilience, ids):
        guarded = GuardedGraphStore(graph_store, resilience)

        element = await guarded.get_element(ids.primary_button)
        relations = await guarded.get_relations(ids.icon_button)

        assert element.name == "Primary Button"
        assert {r.target for r in relations} == {ids.primary_button, ids.product_card}
        assert await guarded.count_by_category() == {"button": 2, "card": 1, "modal": 1}

    @pytest.mark.asyncio
    async def test_failures_reach_degradation_manager(self, graph_store, resilience, ids):
        graph_store.get_relations = AsyncMock(side_effect=TransientError("timeout"))
        guarded = GuardedGraphStore(graph_store, resilience)

        with pytest.raises(RetryExhaustedError):
            await guarded.get_relations(ids.primary_button)
        assert resilience.degradation.consecutive_failures(ServiceType.GRAPH) == 1
