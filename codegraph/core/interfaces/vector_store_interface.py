# codegraph/core/interfaces/vector_store_interface.py
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID


class VectorStoreInterface(ABC):
    """
    Interface for a vector database holding one embedding per graph element.
    """
    @abstractmethod
    async def search(
        self,
        embedding: List[float],
        limit: int = 10,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Tuple[UUID, float]]:
        """Returns (element_id, similarity) pairs, most similar first. Similarity is in [0, 1]."""
        pass

    @abstractmethod
    async def upsert(self, element_id: UUID, embedding: List[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        """Adds or replaces the embedding for an element."""
        pass
