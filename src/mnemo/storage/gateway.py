"""
Database Gateway - abstract persistence interface for the memory engine.

MemoryService only talks to this interface; AsyncMemoryDatabase is the
SQLite implementation. Implementations let their own errors propagate.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import Concept, MemoryFilter, MemoryRecord, MergeAuditEntry, Relationship


class DatabaseGateway(ABC):
    """
    Abstract base class for memory persistence.

    All methods are coroutines. JSON-typed fields (context, metadata) are
    passed in and returned as dicts.
    """

    @abstractmethod
    async def create_memory(self, record: MemoryRecord) -> MemoryRecord:
        """Insert a new memory record and return it."""

    @abstractmethod
    async def get_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        """Fetch a record by id, or None."""

    @abstractmethod
    async def update_memory(self, memory_id: str, updates: Dict[str, Any]) -> Optional[MemoryRecord]:
        """
        Apply a partial update and bump updated_at.

        Returns:
            The updated record, or None if memory_id does not exist
        """

    @abstractmethod
    async def search_memories(self, memory_filter: MemoryFilter) -> List[MemoryRecord]:
        """List records matching every predicate set on the filter."""

    @abstractmethod
    async def find_concept_by_name(self, name: str) -> Optional[Concept]:
        """Exact-name concept lookup."""

    @abstractmethod
    async def create_concept(self, concept: Concept) -> Concept:
        pass

    @abstractmethod
    async def link_memory_concept(self, memory_id: str, concept_id: str) -> None:
        pass

    @abstractmethod
    async def clear_memory_concepts(self, memory_id: str) -> None:
        pass

    @abstractmethod
    async def get_memory_concepts(self, memory_id: str) -> List[Concept]:
        pass

    @abstractmethod
    async def create_relationship(self, relationship: Relationship) -> Relationship:
        pass

    @abstractmethod
    async def get_relationships(self, memory_id: str) -> List[Relationship]:
        """All relationships with memory_id as source or target."""

    @abstractmethod
    async def delete_relationship(self, relationship_id: str) -> bool:
        pass

    @abstractmethod
    async def get_memory_stats(self) -> Dict[str, int]:
        """Counts: total_memories, total_relationships, total_concepts."""

    @abstractmethod
    async def get_average_importance(self) -> float:
        """Average importance of active records (1 when there are none)."""

    @abstractmethod
    async def get_most_active_users(self, limit: int = 10) -> List[Dict[str, Any]]:
        """[{"user_id", "count"}] over active records, busiest first."""

    @abstractmethod
    async def get_top_projects(self, limit: int = 10) -> List[Dict[str, Any]]:
        """[{"project_name", "count"}] from context.projectName of active records."""

    @abstractmethod
    async def get_concept_distribution(self) -> Dict[str, int]:
        """Concept count per concept type."""

    @abstractmethod
    async def create_merge_audit_trail(self, entry: MergeAuditEntry) -> MergeAuditEntry:
        pass

    @abstractmethod
    async def get_merge_audit_trail(self, primary_id: str) -> List[MergeAuditEntry]:
        pass
