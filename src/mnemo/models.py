"""
Data models for the memory record engine.

This module contains the dataclasses stored by the database gateway
(MemoryRecord, Concept, Relationship, MergeAuditEntry) and the result shapes
returned by the service (MemoryNode, RelatedNode, RelatedMemories,
SearchResults, MemoryStats).
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# Valid record statuses; merged is terminal
STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"
STATUS_MERGED = "merged"
MEMORY_STATUSES = {STATUS_ACTIVE, STATUS_ARCHIVED, STATUS_MERGED}

CONCEPT_TYPES = {"entity", "topic", "skill", "project", "person", "custom"}

RELATIONSHIP_TYPES = {"semantic_similarity", "causal", "temporal", "conceptual", "custom"}

MERGE_STRATEGIES = ("combine", "replace", "append")


def compute_content_hash(content: str) -> str:
    """SHA-256 hex digest of content, used as the dedup key."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class MemoryRecord:
    """A stored unit of knowledge."""
    id: str
    content: str
    content_hash: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    importance: int = 1  # 1-5
    status: str = STATUS_ACTIVE  # active | archived | merged
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None
    vector_id: Optional[str] = None
    created_by: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = None
    updated_at: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.content_hash is None and self.content:
            self.content_hash = compute_content_hash(self.content)

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE


@dataclass
class Concept:
    """A named topic/entity/skill/project/person tag."""
    id: str
    name: str
    description: Optional[str] = None
    type: str = "topic"
    confidence: float = 0.8  # 0.0-1.0
    extracted_at: datetime = None

    def __post_init__(self):
        if self.extracted_at is None:
            self.extracted_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "confidence": self.confidence,
            "extracted_at": _iso(self.extracted_at),
        }


@dataclass
class Relationship:
    """A typed edge between two memory records."""
    id: str
    source_id: str
    target_id: str
    relationship_type: str
    strength: float = 1.0  # 0.0-1.0
    bidirectional: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = None
    updated_at: datetime = None
    last_updated: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.last_updated is None:
            self.last_updated = self.created_at

    def other_end(self, memory_id: str) -> str:
        """Endpoint opposite to memory_id."""
        return self.target_id if self.source_id == memory_id else self.source_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "relationship_type": self.relationship_type,
            "strength": self.strength,
            "bidirectional": self.bidirectional,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "last_updated": _iso(self.last_updated),
        }


@dataclass
class MergeAuditEntry:
    """Immutable record of a merge event."""
    id: str
    primary_memory_id: str
    merged_memory_ids: List[str]
    strategy: str
    created_at: datetime = None
    created_by: Optional[str] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "primary_memory_id": self.primary_memory_id,
            "merged_memory_ids": list(self.merged_memory_ids),
            "strategy": self.strategy,
            "created_at": _iso(self.created_at),
            "created_by": self.created_by,
        }


@dataclass
class MemoryFilter:
    """
    Explicit query predicates for DatabaseGateway.search_memories.

    Only these predicates are supported; there is no free-form filter dict.
    """
    content_hash: Optional[str] = None
    status: Optional[str] = None
    created_by: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass
class MemoryNode:
    """A memory record enriched with its linked concepts."""
    id: str
    content: str
    content_hash: str
    context: Dict[str, Any]
    concepts: List[Concept]
    importance: int
    status: str
    access_count: int
    created_at: datetime
    updated_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_accessed_at: Optional[datetime] = None
    vector_id: Optional[str] = None
    created_by: Optional[str] = None

    @classmethod
    def from_record(cls, record: MemoryRecord, concepts: Optional[List[Concept]] = None) -> "MemoryNode":
        return cls(
            id=record.id,
            content=record.content,
            content_hash=record.content_hash,
            context=dict(record.context or {}),
            concepts=list(concepts or []),
            importance=record.importance,
            status=record.status,
            access_count=record.access_count,
            created_at=record.created_at,
            updated_at=record.updated_at,
            metadata=dict(record.metadata or {}),
            last_accessed_at=record.last_accessed_at,
            vector_id=record.vector_id,
            created_by=record.created_by,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "content": self.content,
            "content_hash": self.content_hash,
            "context": self.context,
            "concepts": [c.to_dict() for c in self.concepts],
            "importance": self.importance,
            "status": self.status,
            "access_count": self.access_count,
            "last_accessed_at": _iso(self.last_accessed_at),
            "vector_id": self.vector_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "created_by": self.created_by,
            "metadata": self.metadata,
        }


@dataclass
class RelatedNode:
    """A neighbour reached from the center memory."""
    memory: MemoryNode
    relationship: Relationship
    distance: int = 1
    path: List[Relationship] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory": self.memory.to_dict(),
            "relationship": self.relationship.to_dict(),
            "distance": self.distance,
            "path": [r.to_dict() for r in self.path],
        }


@dataclass
class RelatedMemories:
    center_memory: MemoryNode
    related_nodes: List[RelatedNode] = field(default_factory=list)
    clusters: List[Any] = field(default_factory=list)
    concepts: List[Concept] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "center_memory": self.center_memory.to_dict(),
            "related_nodes": [n.to_dict() for n in self.related_nodes],
            "clusters": list(self.clusters),
            "concepts": [c.to_dict() for c in self.concepts],
        }


@dataclass
class SearchResults:
    memories: List[MemoryNode]
    total: int
    processing_time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memories": [m.to_dict() for m in self.memories],
            "total": self.total,
            "processing_time_ms": self.processing_time_ms,
        }


@dataclass
class MemoryStats:
    total_memories: int
    total_relationships: int
    total_concepts: int
    average_importance: float
    most_active_users: List[Dict[str, Any]] = field(default_factory=list)
    top_projects: List[Dict[str, Any]] = field(default_factory=list)
    concept_distribution: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_memories": self.total_memories,
            "total_relationships": self.total_relationships,
            "total_concepts": self.total_concepts,
            "average_importance": self.average_importance,
            "most_active_users": list(self.most_active_users),
            "top_projects": list(self.top_projects),
            "concept_distribution": dict(self.concept_distribution),
        }


@dataclass
class SimilarMatch:
    """A single Similarity Oracle hit."""
    memory_id: str
    similarity: float
    content: str = ""
