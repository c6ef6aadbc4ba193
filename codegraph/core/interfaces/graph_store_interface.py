# codegraph/core/interfaces/graph_store_interface.py
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple
from uuid import UUID

from codegraph.core.types.common_types import Element, PropagationRelation, TruthValue


class GraphStoreInterface(ABC):
    """
    Interface for the knowledge-graph backend holding UI component elements and their relations.
    """
    @abstractmethod
    async def get_element(self, element_id: UUID) -> Element:
        """Returns the element or raises NotFoundError."""
        pass

    @abstractmethod
    async def get_relations(self, element_id: UUID) -> List[PropagationRelation]:
        """Returns the propagation relations leaving the element."""
        pass

    @abstractmethod
    async def update_truth(self, element_id: UUID, truth: TruthValue) -> None:
        """Persists a new truth value for the element."""
        pass

    @abstractmethod
    async def find_by_terms(self, terms: List[str], limit: int = 20) -> List[Tuple[UUID, int]]:
        """Pattern match on category, name and tags. Returns (element_id, degree) pairs."""
        pass

    @abstractmethod
    async def count_by_label(self) -> Dict[str, int]:
        pass

    @abstractmethod
    async def count_by_category(self) -> Dict[str, int]:
        pass

    @abstractmethod
    async def count_by_design_system(self) -> Dict[str, int]:
        pass
