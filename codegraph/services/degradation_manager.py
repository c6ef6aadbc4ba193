"""
Graceful degradation
Maps backend health to a single OperatingMode and keeps recent answers for cached-only operation
"""

import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from codegraph.core.types.common_types import OperatingMode, ServiceHealth, ServiceType
from codegraph.utils.circuit_breaker import CircuitBreakerRegistry, CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")


@dataclass
class DegradationStatus:
    mode: OperatingMode
    unavailable_services: List[ServiceType] = field(default_factory=list)
    degraded_services: List[ServiceType] = field(default_factory=list)
    degraded_request_count: int = 0

    @property
    def message(self) -> str:
        return self.mode.description()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "message": self.message,
            "unavailable_services": [s.value for s in self.unavailable_services],
            "degraded_services": [s.value for s in self.degraded_services],
            "degraded_request_count": self.degraded_request_count
        }


class DegradationManager:
    """
    Tracks per-service health from consecutive failures and circuit state.

    Health:
    - HEALTHY: fewer than degraded_threshold consecutive failures
    - DEGRADED: degraded_threshold or more, circuit half-open, or open and cooled down
    - DOWN: circuit open within its cooldown (offline_threshold failures when no breakers are attached)
    """

    def __init__(
        self,
        breakers: Optional[CircuitBreakerRegistry] = None,
        degraded_threshold: int = 3,
        offline_threshold: int = 5,
        enabled: bool = True
    ):
        self.breakers = breakers
        self.degraded_threshold = degraded_threshold
        self.offline_threshold = offline_threshold
        self.enabled = enabled
        self._consecutive_failures: Dict[ServiceType, int] = {s: 0 for s in ServiceType}
        self._last_error: Dict[ServiceType, Optional[str]] = {s: None for s in ServiceType}
        self._degraded_requests = 0
        self._last_mode = OperatingMode.FULL

    def set_degradation_enabled(self, enabled: bool):
        self.enabled = enabled
        logger.info(f"Graceful degradation {'enabled' if enabled else 'disabled'}")

    def record_success(self, service: ServiceType):
        previous = self.service_health(service)
        self._consecutive_failures[service] = 0
        self._last_error[service] = None
        if previous != ServiceHealth.HEALTHY and self.service_health(service) == ServiceHealth.HEALTHY:
            logger.info(f"Service '{service.value}' recovered")

    def record_failure(self, service: ServiceType, error: Any = None):
        previous = self.service_health(service)
        self._consecutive_failures[service] += 1
        self._last_error[service] = str(error) if error is not None else None
        current = self.service_health(service)
        if current != previous:
            logger.warning(
                f"Service '{service.value}' is now {current.value} after "
                f"{self._consecutive_failures[service]} consecutive failures: {error}"
            )

    def consecutive_failures(self, service: ServiceType) -> int:
        return self._consecutive_failures[service]

    def last_error(self, service: ServiceType) -> Optional[str]:
        return self._last_error[service]

    def service_health(self, service: ServiceType) -> ServiceHealth:
        failures = self._consecutive_failures[service]

        if self.breakers is None:
            if failures >= self.offline_threshold:
                return ServiceHealth.DOWN
            if failures >= self.degraded_threshold:
                return ServiceHealth.DEGRADED
            return ServiceHealth.HEALTHY

        # With breakers attached the circuit decides DOWN, so a cooled-down
        # service is offered its trial call instead of staying DOWN forever
        breaker = self.breakers.get(service)
        if breaker.state == CircuitState.OPEN:
            return ServiceHealth.DEGRADED if breaker.ready_for_trial() else ServiceHealth.DOWN
        if breaker.state == CircuitState.HALF_OPEN or failures >= self.degraded_threshold:
            return ServiceHealth.DEGRADED
        return ServiceHealth.HEALTHY

    def all_services_health(self) -> Dict[ServiceType, ServiceHealth]:
        return {service: self.service_health(service) for service in ServiceType}

    def is_service_available(self, service: ServiceType) -> bool:
        return self.service_health(service) != ServiceHealth.DOWN

    def operating_mode(self) -> OperatingMode:
        if not self.enabled:
            return OperatingMode.FULL

        # Vector search needs the embedding service as well as the vector store
        vector_ok = self.is_service_available(ServiceType.VECTOR) and self.is_service_available(ServiceType.LLM)
        graph_ok = self.is_service_available(ServiceType.GRAPH)

        if vector_ok and graph_ok:
            mode = OperatingMode.FULL
        elif vector_ok:
            mode = OperatingMode.PARTIAL_VECTOR_ONLY
        elif graph_ok:
            mode = OperatingMode.PARTIAL_GRAPH_ONLY
        else:
            mode = OperatingMode.CACHED_ONLY

        if mode != self._last_mode:
            logger.info(f"Operating mode changed: {self._last_mode.value} → {mode.value} ({mode.description()})")
            self._last_mode = mode
        return mode

    def can_serve(self) -> bool:
        return self.operating_mode().can_serve()

    def record_degraded_request(self):
        self._degraded_requests += 1

    @property
    def degraded_request_count(self) -> int:
        return self._degraded_requests

    def status(self) -> DegradationStatus:
        health = self.all_services_health()
        return DegradationStatus(
            mode=self.operating_mode(),
            unavailable_services=[s for s, h in health.items() if h == ServiceHealth.DOWN],
            degraded_services=[s for s, h in health.items() if h == ServiceHealth.DEGRADED],
            degraded_request_count=self._degraded_requests
        )


class ResponseCache(Generic[T]):
    """
    Bounded LRU cache of recent query responses keyed by normalized query text.
    Entries older than ttl are hidden from get() but still served by get_stale().
    """

    def __init__(self, max_entries: int = 1000, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[T, float]]" = OrderedDict()

    @staticmethod
    def normalize_key(query: str) -> str:
        return _WHITESPACE.sub(" ", query.strip().lower())

    def set(self, query: str, value: T):
        key = self.normalize_key(query)
        self._entries[key] = (value, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cached response for '{evicted}'")

    def _lookup(self, query: str, allow_stale: bool) -> Optional[Tuple[T, float]]:
        key = self.normalize_key(query)
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        age = self._clock() - stored_at
        if age > self.ttl and not allow_stale:
            return None
        self._entries.move_to_end(key)
        return value, age

    def get(self, query: str) -> Optional[Tuple[T, float]]:
        """Returns (value, age_seconds) for a fresh entry."""
        return self._lookup(query, allow_stale=False)

    def get_stale(self, query: str) -> Optional[Tuple[T, float]]:
        """Returns (value, age_seconds) regardless of ttl."""
        return self._lookup(query, allow_stale=True)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def is_empty(self) -> bool:
        return not self._entries
