import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import numpy as np

from codegraph.core.interfaces.vector_store_interface import VectorStoreInterface
from codegraph.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class InMemoryVectorStore(VectorStoreInterface):
    """
    Brute-force cosine similarity over an in-process matrix.
    Suitable for tests and small component libraries.
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        self._ids: List[UUID] = []
        self._vectors: List[np.ndarray] = []
        self._metadata: Dict[UUID, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._ids)

    def _as_unit_vector(self, embedding: List[float]) -> np.ndarray:
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.ndim != 1 or vector.size == 0:
            raise InvalidInputError("Embedding must be a non-empty 1-D vector")
        if self.dimension is not None and vector.size != self.dimension:
            raise InvalidInputError(f"Expected embedding of dimension {self.dimension}, got {vector.size}")
        norm = np.linalg.norm(vector)
        return vector / norm if norm > 0 else vector

    async def upsert(self, element_id: UUID, embedding: List[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        vector = self._as_unit_vector(embedding)
        if self.dimension is None:
            self.dimension = vector.size
        if element_id in self._metadata:
            self._vectors[self._ids.index(element_id)] = vector
        else:
            self._ids.append(element_id)
            self._vectors.append(vector)
        self._metadata[element_id] = dict(metadata or {})

    async def search(
        self,
        embedding: List[float],
        limit: int = 10,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Tuple[UUID, float]]:
        if not self._ids or limit <= 0:
            return []
        query = self._as_unit_vector(embedding)

        candidates = [
            i for i, element_id in enumerate(self._ids)
            if not filters or all(self._metadata[element_id].get(k) == v for k, v in filters.items())
        ]
        if not candidates:
            return []

        matrix = np.stack([self._vectors[i] for i in candidates])
        # Cosine in [-1, 1] mapped to a similarity in [0, 1]
        similarities = (matrix @ query + 1.0) / 2.0
        order = sorted(range(len(candidates)), key=lambda j: (-float(similarities[j]), str(self._ids[candidates[j]])))
        return [(self._ids[candidates[j]], float(similarities[j])) for j in order[:limit]]
