"""
Retry with exponential backoff and jitter.

Only transient failures (timeouts, connection errors) are retried. Validation
and not-found errors, and open circuits, propagate on the first attempt.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Optional

import httpx

from codegraph.core.types.common_types import ServiceType
from codegraph.utils.exceptions import (
    CircuitOpenError,
    InvalidInputError,
    NotFoundError,
    RetryExhaustedError,
    TransientError,
)

logger = logging.getLogger(__name__)

FATAL_ERRORS = (InvalidInputError, NotFoundError, CircuitOpenError, RetryExhaustedError)
RETRYABLE_ERRORS = (TransientError, asyncio.TimeoutError, TimeoutError, ConnectionError, httpx.TransportError)


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, FATAL_ERRORS):
        return False
    return isinstance(error, RETRYABLE_ERRORS)


@dataclass
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 0.1
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.25
    timeout: Optional[float] = None
    retryable: Callable[[BaseException], bool] = field(default=is_retryable, repr=False)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def for_service(cls, service: ServiceType, resilience=None) -> "RetryPolicy":
        """
        Per-service defaults: LLM calls retry 3 times with a 60s timeout, graph and
        vector stores 2 times with 10s, the reasoner 2 times with 30s.
        """
        if resilience is None:
            from codegraph.config.settings import settings
            resilience = settings.resilience

        if service == ServiceType.LLM:
            max_retries, timeout = resilience.retry_max_llm, resilience.llm_timeout_secs
        elif service in (ServiceType.GRAPH, ServiceType.VECTOR):
            max_retries, timeout = resilience.retry_max_db, resilience.db_timeout_secs
        else:
            max_retries, timeout = resilience.retry_max_reasoner, resilience.default_timeout_secs

        return cls(
            max_retries=max_retries,
            base_delay=resilience.retry_base_delay_ms / 1000,
            max_delay=resilience.retry_max_delay_ms / 1000,
            timeout=timeout
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number attempt+1, plus up to `jitter` extra."""
        delay = min(self.base_delay * (self.multiplier ** attempt), self.max_delay)
        if self.jitter:
            delay *= 1.0 + random.uniform(0.0, self.jitter)
        return delay

    async def execute(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run an async function under this policy.

        Raises:
            RetryExhaustedError: After max_attempts retryable failures, chained from the last one
            Original exception: For non-retryable failures, on the first occurrence
        """
        name = getattr(func, "__name__", repr(func))
        last_exception: Optional[BaseException] = None

        for attempt in range(self.max_attempts):
            try:
                if self.timeout is not None:
                    return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout)
                return await func(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e):
                    raise
                last_exception = e
                if attempt < self.max_attempts - 1:
                    wait_time = self.delay_for(attempt)
                    logger.warning(
                        f"Attempt {attempt + 1} failed for {name}: {e!r}. Retrying in {wait_time:.2f}s..."
                    )
                    await asyncio.sleep(wait_time)

        logger.error(f"All {self.max_attempts} attempts failed for {name}: {last_exception!r}")
        raise RetryExhaustedError(
            f"All {self.max_attempts} attempts failed for {name}: {last_exception}",
            attempts=self.max_attempts
        ) from last_exception


def with_retry(policy: RetryPolicy):
    """Retry decorator for async functions"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await policy.execute(func, *args, **kwargs)
        return wrapper
    return decorator
