"""
Circuit Breaker Pattern Implementation
Stops calling a failing backend until it has had time to recover
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from codegraph.core.types.common_types import ServiceType
from codegraph.utils.exceptions import CircuitOpenError
from codegraph.utils.retry import is_retryable

logger = logging.getLogger(__name__)

__all__ = ["CircuitState", "CircuitBreaker", "CircuitBreakerRegistry", "CircuitOpenError"]


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"      # Failures exceeded threshold
    HALF_OPEN = "half_open"  # One trial call in flight


class CircuitBreaker:
    """
    Circuit breaker for a single backend.

    States:
    - CLOSED: Requests pass through; consecutive failures are counted
    - OPEN: Requests fail immediately with CircuitOpenError until the cooldown elapses
    - HALF_OPEN: Exactly one trial request is admitted; its outcome closes or reopens the circuit
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        is_failure: Callable[[BaseException], bool] = is_retryable,
        clock: Callable[[], float] = time.monotonic
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.is_failure = is_failure
        self._clock = clock

        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.state = CircuitState.CLOSED
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt reset."""
        return (
            self.opened_at is not None and
            self._clock() - self.opened_at >= self.recovery_timeout
        )

    def ready_for_trial(self) -> bool:
        return self.state == CircuitState.OPEN and self._should_attempt_reset()

    def _open(self):
        self.state = CircuitState.OPEN
        self.opened_at = self._clock()
        self._trial_in_flight = False

    async def _before_call(self):
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if not self._should_attempt_reset():
                    raise CircuitOpenError(f"Circuit breaker '{self.name}' is OPEN", service=self.name)
                self.state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                logger.info(f"Circuit breaker '{self.name}' attempting recovery")
                return

            if self.state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(
                        f"Circuit breaker '{self.name}' is HALF_OPEN with a trial in flight", service=self.name
                    )
                self._trial_in_flight = True

    async def _record_success(self):
        async with self._lock:
            if self.state == CircuitState.OPEN:
                # Late result from a call admitted before the circuit opened
                return
            self.failure_count = 0
            self._trial_in_flight = False
            if self.state != CircuitState.CLOSED:
                logger.info(f"Circuit breaker '{self.name}' recovered - closing circuit")
            self.state = CircuitState.CLOSED
            self.opened_at = None

    async def _record_failure(self, error: BaseException):
        async with self._lock:
            self.failure_count += 1
            if self.state == CircuitState.HALF_OPEN:
                self._open()
                logger.warning(f"Circuit breaker '{self.name}' reopened - recovery trial failed: {error}")
            elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                self._open()
                logger.warning(
                    f"Circuit breaker '{self.name}' opened - {self.failure_count} consecutive failures"
                )
            else:
                logger.debug(f"Circuit breaker '{self.name}' recorded failure {self.failure_count}: {error}")

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function through circuit breaker.

        Args:
            func: Async (or sync) function to execute
            *args: Arguments for function
            **kwargs: Keyword arguments for function

        Returns:
            Function result if successful

        Raises:
            CircuitOpenError: If circuit is open or a half-open trial is already running
            Original exception: If function fails
        """
        await self._before_call()

        try:
            if asyncio.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                result = func(*args, **kwargs)
                if asyncio.iscoroutine(result):
                    result = await result
        except asyncio.CancelledError:
            self._trial_in_flight = False
            raise
        except Exception as e:
            if self.is_failure(e):
                await self._record_failure(e)
            else:
                # The backend answered; errors such as not-found do not count against it
                await self._record_success()
            raise

        await self._record_success()
        return result

    def get_state(self) -> dict:
        """Get current circuit breaker state."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "opened_at": self.opened_at,
            "can_retry": self._should_attempt_reset() if self.state == CircuitState.OPEN else True
        }

    def reset(self):
        """Manually reset the circuit breaker."""
        self.failure_count = 0
        self.opened_at = None
        self.state = CircuitState.CLOSED
        self._trial_in_flight = False
        logger.info(f"Circuit breaker '{self.name}' manually reset")


class CircuitBreakerRegistry:
    """One breaker per backend service, owned by the engine rather than the module."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self._breakers: Dict[ServiceType, CircuitBreaker] = {
            service: CircuitBreaker(
                service.value,
                failure_threshold=failure_threshold,
                recovery_timeout=recovery_timeout,
                clock=clock
            )
            for service in ServiceType
        }

    def get(self, service: ServiceType) -> CircuitBreaker:
        return self._breakers[service]

    def state(self, service: ServiceType) -> CircuitState:
        return self._breakers[service].state

    def states(self) -> Dict[str, dict]:
        return {service.value: breaker.get_state() for service, breaker in self._breakers.items()}

    def reset_all(self):
        for breaker in self._breakers.values():
            breaker.reset()
