"""
Similarity Oracle - abstract semantic nearest-neighbour interface.

MemoryService indexes content through this interface and asks it for
similar records; VectorIndex is the bundled implementation.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import SimilarMatch


class SimilarityOracle(ABC):
    """Abstract base class for similarity search backends."""

    @abstractmethod
    async def index_memory(self, memory_id: str, content: str,
                           context: Optional[Dict[str, Any]] = None) -> str:
        """
        Embed and index a record's content.

        Returns:
            vector_id to persist on the record
        """

    @abstractmethod
    async def find_similar(self, text: str, threshold: float = 0.7,
                           limit: int = 10) -> List[SimilarMatch]:
        """Matches with similarity >= threshold, best first, at most limit."""

    @abstractmethod
    async def update_vector(self, vector_id: str, content: str,
                            context: Optional[Dict[str, Any]] = None) -> None:
        """Re-embed content in place under an existing vector_id."""

    @abstractmethod
    async def delete_vector(self, vector_id: str) -> bool:
        pass
