"""
Resilience core: every backend call goes through retry → circuit breaker → timeout,
and its outcome is reported to the degradation manager.
"""

import asyncio
from dataclasses import replace
import logging
from typing import Any, Callable, Dict, Optional

from codegraph.core.interfaces.graph_store_interface import GraphStoreInterface
from codegraph.core.types.common_types import ServiceType
from codegraph.services.degradation_manager import DegradationManager
from codegraph.utils.circuit_breaker import CircuitBreakerRegistry
from codegraph.utils.exceptions import CircuitOpenError, RetryExhaustedError
from codegraph.utils.retry import RetryPolicy, is_retryable

logger = logging.getLogger(__name__)


class ResilienceCore:
    """
    Owns the breakers, retry policies and degradation manager for all backends.

    A call is retried per its service's policy. Each attempt passes through that
    service's breaker with its own timeout, so timeouts count as breaker failures.
    """

    def __init__(
        self,
        breakers: Optional[CircuitBreakerRegistry] = None,
        policies: Optional[Dict[ServiceType, RetryPolicy]] = None,
        degradation: Optional[DegradationManager] = None
    ):
        self.breakers = breakers or CircuitBreakerRegistry()
        self.policies = policies or {service: RetryPolicy.for_service(service) for service in ServiceType}
        self.degradation = degradation or DegradationManager(self.breakers)

    @classmethod
    def from_settings(cls, resilience) -> "ResilienceCore":
        breakers = CircuitBreakerRegistry(
            failure_threshold=resilience.circuit_breaker_threshold,
            recovery_timeout=resilience.circuit_breaker_timeout_secs
        )
        policies = {service: RetryPolicy.for_service(service, resilience) for service in ServiceType}
        degradation = DegradationManager(
            breakers,
            degraded_threshold=resilience.degraded_threshold,
            offline_threshold=resilience.offline_threshold,
            enabled=resilience.degradation_enabled
        )
        return cls(breakers, policies, degradation)

    async def call(
        self,
        service: ServiceType,
        func: Callable,
        *args,
        timeout: Optional[float] = None,
        **kwargs
    ) -> Any:
        """
        Call a backend with retry, circuit breaking and a per-attempt timeout.

        Args:
            service: Backend being called
            func: Async function performing the call
            timeout: Per-attempt timeout, defaults to the service policy's timeout

        Raises:
            CircuitOpenError: The service's circuit is open
            RetryExhaustedError: Every attempt failed with a retryable error
            Original exception: Non-retryable failures such as NotFoundError
        """
        policy = self.policies[service]
        breaker = self.breakers.get(service)
        attempt_timeout = timeout if timeout is not None else policy.timeout

        async def guarded():
            if attempt_timeout is None:
                return await func(*args, **kwargs)
            return await asyncio.wait_for(func(*args, **kwargs), timeout=attempt_timeout)

        async def attempt():
            return await breaker.call(guarded)

        attempt.__name__ = f"{service.value}.{getattr(func, '__name__', 'call')}"

        try:
            if policy.timeout is not None:
                # The timeout is already applied inside the breaker
                policy = replace(policy, timeout=None)
            result = await policy.execute(attempt)
        except (CircuitOpenError, RetryExhaustedError) as e:
            self.degradation.record_failure(service, e)
            raise
        except Exception as e:
            if is_retryable(e):
                self.degradation.record_failure(service, e)
            else:
                self.degradation.record_success(service)
            raise

        self.degradation.record_success(service)
        return result


class GuardedGraphStore(GraphStoreInterface):
    """Routes every graph-store call through the resilience core under ServiceType.GRAPH."""

    def __init__(self, inner: GraphStoreInterface, resilience: ResilienceCore):
        self.inner = inner
        self.resilience = resilience

    async def _call(self, func: Callable, *args) -> Any:
        return await self.resilience.call(ServiceType.GRAPH, func, *args)

    async def get_element(self, element_id):
        return await self._call(self.inner.get_element, element_id)

    async def get_relations(self, element_id):
        return await self._call(self.inner.get_relations, element_id)

    async def update_truth(self, element_id, truth):
        return await self._call(self.inner.update_truth, element_id, truth)

    async def find_by_terms(self, terms, limit=20):
        return await self._call(self.inner.find_by_terms, terms, limit)

    async def count_by_label(self):
        return await self._call(self.inner.count_by_label)

    async def count_by_category(self):
        return await self._call(self.inner.count_by_category)

    async def count_by_design_system(self):
        return await self._call(self.inner.count_by_design_system)
