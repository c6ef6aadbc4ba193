# codegraph/core/interfaces/embedding_service_interface.py
from abc import ABC, abstractmethod
from typing import List


class EmbeddingServiceInterface(ABC):
    @abstractmethod
    async def embed_text(self, text: str) -> List[float]:
        """Generates an embedding for a single piece of text."""
        pass
