# codegraph/core/interfaces/reasoner_interface.py
from abc import ABC, abstractmethod
from typing import List

from codegraph.core.types.common_types import NarseseStatement


class ReasonerInterface(ABC):
    """
    Interface for the symbolic reasoning backend.
    """
    @abstractmethod
    async def translate(self, query: str) -> List[NarseseStatement]:
        """Turns a natural-language query into Narsese statements."""
        pass

    @abstractmethod
    async def infer(self, statements: List[NarseseStatement]) -> List[NarseseStatement]:
        """Runs inference and returns the input plus derived statements, each with its own truth value."""
        pass
