"""
Shared fixtures: a small in-memory component graph and fast resilience policies.
"""

from types import SimpleNamespace
from uuid import UUID

import pytest

from codegraph.core.types.common_types import Element, ServiceType, TruthValue
from codegraph.modules.graph.file_graph_store import FileGraphStore
from codegraph.services.degradation_manager import DegradationManager
from codegraph.services.resilience import ResilienceCore
from codegraph.utils.circuit_breaker import CircuitBreakerRegistry
from codegraph.utils.retry import RetryPolicy

PRIMARY_BUTTON_ID = UUID("00000000-0000-0000-0000-000000000001")
ICON_BUTTON_ID = UUID("00000000-0000-0000-0000-000000000002")
PRODUCT_CARD_ID = UUID("00000000-0000-0000-0000-000000000003")
CONFIRM_MODAL_ID = UUID("00000000-0000-0000-0000-000000000004")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_elements():
    return [
        Element(
            id=PRIMARY_BUTTON_ID, name="Primary Button", category="button",
            design_system="material", truth=TruthValue(0.9, 0.5), tags=["primary", "icon"]
        ),
        Element(
            id=ICON_BUTTON_ID, name="Icon Button", category="button",
            design_system="material", truth=TruthValue(1.0, 0.5), tags=["icon"]
        ),
        Element(
            id=PRODUCT_CARD_ID, name="Product Card", category="card",
            design_system="tailwind", truth=TruthValue(1.0, 0.5), tags=["shadow"]
        ),
        Element(
            id=CONFIRM_MODAL_ID, name="Confirm Dialog", category="modal",
            design_system="tailwind", truth=TruthValue(1.0, 0.5), tags=["dark"]
        ),
    ]


@pytest.fixture
def graph_store(sample_elements):
    """
    primary button --SIMILAR_TO(1.0)-- icon button --CAN_REPLACE(0.8)--> product card
    confirm modal is isolated.
    """
    store = FileGraphStore(None)
    for element in sample_elements:
        store.add_element(element)
    store.add_relation(PRIMARY_BUTTON_ID, ICON_BUTTON_ID, "SIMILAR_TO", 1.0)
    store.add_relation(ICON_BUTTON_ID, PRODUCT_CARD_ID, "CAN_REPLACE", 0.8)
    return store


def fast_policies(max_retries: int = 1, timeout: float = 1.0):
    return {
        service: RetryPolicy(max_retries=max_retries, base_delay=0.0, jitter=0.0, timeout=timeout)
        for service in ServiceType
    }


@pytest.fixture
def resilience(clock):
    """Resilience core with no backoff delay and a controllable breaker clock."""
    breakers = CircuitBreakerRegistry(failure_threshold=3, recovery_timeout=30.0, clock=clock)
    return ResilienceCore(breakers, fast_policies(), DegradationManager(breakers))


@pytest.fixture
def ids():
    return SimpleNamespace(
        primary_button=PRIMARY_BUTTON_ID,
        icon_button=ICON_BUTTON_ID,
        product_card=PRODUCT_CARD_ID,
        confirm_modal=CONFIRM_MODAL_ID
    )


@pytest.fixture
def make_policies():
    return fast_policies
