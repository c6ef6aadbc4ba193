# codegraph/core/interfaces/feedback_repository_interface.py
from abc import ABC, abstractmethod
from typing import Any, Dict, List
from uuid import UUID

from codegraph.core.types.common_types import FeedbackEvent


class FeedbackRepositoryInterface(ABC):
    """
    Durable, append-only storage for feedback events and the propagation they caused.
    """
    @abstractmethod
    async def save(self, event: FeedbackEvent, result: Any, confidence_delta: float) -> None:
        pass

    @abstractmethod
    async def get(self, feedback_id: UUID) -> Dict[str, Any]:
        """Raises NotFoundError for unknown ids."""
        pass

    @abstractmethod
    async def find_by_element(self, element_id: UUID, limit: int = 50) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def summary_for_element(self, element_id: UUID) -> Any:
        pass

    @abstractmethod
    async def metrics(self) -> Any:
        pass

    @abstractmethod
    async def negative_ratio(self, element_id: UUID) -> float:
        """Share of negative feedback recorded for the element, 0.0 when none exists."""
        pass
