"""Pytest fixtures for Mnemo tests"""
import sys
import copy
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mnemo.event_bus import EventBus
from mnemo.models import (
    Concept,
    MemoryFilter,
    MemoryRecord,
    MergeAuditEntry,
    Relationship,
    SimilarMatch,
)
from mnemo.service import MemoryService
from mnemo.similarity import SimilarityOracle
from mnemo.storage import DatabaseGateway


class InMemoryGateway(DatabaseGateway):
    """Dict-backed Database Gateway that counts calls per method."""

    def __init__(self):
        self.memories: Dict[str, MemoryRecord] = {}
        self.concepts: Dict[str, Concept] = {}
        self.links: Dict[str, List[str]] = {}
        self.relationships: Dict[str, Relationship] = {}
        self.audits: List[MergeAuditEntry] = []
        self.calls = Counter()
        self.fail_audit = False

    async def create_memory(self, record: MemoryRecord) -> MemoryRecord:
        self.calls["create_memory"] += 1
        self.memories[record.id] = copy.deepcopy(record)
        return record

    async def get_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        self.calls["get_memory"] += 1
        record = self.memories.get(memory_id)
        return copy.deepcopy(record) if record else None

    async def update_memory(self, memory_id: str, updates: Dict[str, Any]) -> Optional[MemoryRecord]:
        self.calls["update_memory"] += 1
        record = self.memories.get(memory_id)
        if record is None:
            return None
        for key, value in updates.items():
            setattr(record, key, copy.deepcopy(value))
        record.updated_at = datetime.now()
        return copy.deepcopy(record)

    async def search_memories(self, memory_filter: MemoryFilter) -> List[MemoryRecord]:
        self.calls["search_memories"] += 1
        records = [
            r for r in self.memories.values()
            if (not memory_filter.content_hash or r.content_hash == memory_filter.content_hash)
            and (not memory_filter.status or r.status == memory_filter.status)
            and (not memory_filter.created_by or r.created_by == memory_filter.created_by)
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        start = memory_filter.offset or 0
        end = start + memory_filter.limit if memory_filter.limit else None
        return [copy.deepcopy(r) for r in records[start:end]]

    async def find_concept_by_name(self, name: str) -> Optional[Concept]:
        for concept in self.concepts.values():
            if concept.name == name:
                return concept
        return None

    async def create_concept(self, concept: Concept) -> Concept:
        self.calls["create_concept"] += 1
        self.concepts[concept.id] = concept
        return concept

    async def link_memory_concept(self, memory_id: str, concept_id: str) -> None:
        linked = self.links.setdefault(memory_id, [])
        if concept_id not in linked:
            linked.append(concept_id)

    async def clear_memory_concepts(self, memory_id: str) -> None:
        self.links.pop(memory_id, None)

    async def get_memory_concepts(self, memory_id: str) -> List[Concept]:
        concepts = [self.concepts[cid] for cid in self.links.get(memory_id, [])]
        return sorted(concepts, key=lambda c: c.name)

    async def create_relationship(self, relationship: Relationship) -> Relationship:
        self.calls["create_relationship"] += 1
        self.relationships[relationship.id] = relationship
        return relationship

    async def get_relationships(self, memory_id: str) -> List[Relationship]:
        self.calls["get_relationships"] += 1
        return [
            r for r in self.relationships.values()
            if r.source_id == memory_id or r.target_id == memory_id
        ]

    async def delete_relationship(self, relationship_id: str) -> bool:
        self.calls["delete_relationship"] += 1
        return self.relationships.pop(relationship_id, None) is not None

    async def get_memory_stats(self) -> Dict[str, int]:
        return {
            "total_memories": len(self.memories),
            "total_relationships": len(self.relationships),
            "total_concepts": len(self.concepts),
        }

    async def get_average_importance(self) -> float:
        active = [r.importance for r in self.memories.values() if r.is_active]
        return sum(active) / len(active) if active else 1.0

    async def get_most_active_users(self, limit: int = 10) -> List[Dict[str, Any]]:
        counts = Counter(r.created_by for r in self.memories.values() if r.is_active and r.created_by)
        return [{"user_id": u, "count": c} for u, c in counts.most_common(limit)]

    async def get_top_projects(self, limit: int = 10) -> List[Dict[str, Any]]:
        counts = Counter(
            r.context.get("projectName") for r in self.memories.values()
            if r.is_active and r.context.get("projectName")
        )
        return [{"project_name": p, "count": c} for p, c in counts.most_common(limit)]

    async def get_concept_distribution(self) -> Dict[str, int]:
        return dict(Counter(c.type for c in self.concepts.values()))

    async def create_merge_audit_trail(self, entry: MergeAuditEntry) -> MergeAuditEntry:
        if self.fail_audit:
            raise RuntimeError("audit table unavailable")
        self.audits.append(entry)
        return entry

    async def get_merge_audit_trail(self, primary_id: str) -> List[MergeAuditEntry]:
        return [a for a in self.audits if a.primary_memory_id == primary_id]


class ScriptedOracle(SimilarityOracle):
    """
    Similarity Oracle returning exact-content matches at 1.0.

    Set ``scripted`` to a list of SimilarMatch to return instead, or
    ``fail_find`` to make find_similar raise.
    """

    def __init__(self):
        self.vectors: Dict[str, tuple] = {}
        self.scripted: Optional[List[SimilarMatch]] = None
        self.fail_find = False
        self.fail_update = False
        self.find_calls: List[tuple] = []
        self.updated: List[tuple] = []

    async def index_memory(self, memory_id: str, content: str,
                           context: Optional[Dict[str, Any]] = None) -> str:
        vector_id = f"vec-{memory_id}"
        self.vectors[vector_id] = (memory_id, content)
        return vector_id

    async def find_similar(self, text: str, threshold: float = 0.7,
                           limit: int = 10) -> List[SimilarMatch]:
        self.find_calls.append((text, threshold, limit))
        if self.fail_find:
            raise RuntimeError("oracle unavailable")
        if self.scripted is not None:
            return list(self.scripted)[:limit]
        matches = [
            SimilarMatch(memory_id=mid, similarity=1.0, content=content)
            for mid, content in self.vectors.values()
            if content == text
        ]
        return matches[:limit]

    async def update_vector(self, vector_id: str, content: str,
                            context: Optional[Dict[str, Any]] = None) -> None:
        if self.fail_update:
            raise RuntimeError("oracle unavailable")
        memory_id, _ = self.vectors[vector_id]
        self.vectors[vector_id] = (memory_id, content)
        self.updated.append((vector_id, content))

    async def delete_vector(self, vector_id: str) -> bool:
        return self.vectors.pop(vector_id, None) is not None


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def oracle():
    return ScriptedOracle()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def service(gateway, oracle, event_bus):
    """MemoryService over the in-memory gateway and scripted oracle."""
    return MemoryService(gateway, oracle, event_bus=event_bus)


@pytest.fixture
def base_path(tmp_path):
    """Data directory for CLI tests (not yet initialized)."""
    return tmp_path / "mnemo"
