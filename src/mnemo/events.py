"""
Event type definitions for memory operations.

This module defines typed events emitted by MemoryService:
- MemoryStoredEvent: When a new memory is stored (not on dedup hits)
- MemoryRecalledEvent: When memories are retrieved or searched
- MemoryConnectedEvent: When a relationship is created explicitly
- MemoryMergedEvent: When secondaries are merged into a primary
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any


@dataclass
class MemoryStoredEvent:
    """Event emitted when a memory is stored."""
    memory_id: str
    content: str
    importance: int = 1
    concepts: List[str] = field(default_factory=list)
    auto_links: int = 0
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "memory.stored"
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type,
            "memory_id": self.memory_id,
            "content": self.content,
            "importance": self.importance,
            "concepts": list(self.concepts),
            "auto_links": self.auto_links,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "metadata": self.metadata or {}
        }


@dataclass
class MemoryRecalledEvent:
    """Event emitted when memories are recalled."""
    query: Optional[str]
    result_count: int
    top_results: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "memory.recalled"
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "query": self.query,
            "result_count": self.result_count,
            "top_results": self.top_results,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "metadata": self.metadata or {}
        }


@dataclass
class MemoryConnectedEvent:
    """Event emitted when two memories are connected."""
    relationship_id: str
    source_id: str
    target_id: str
    relationship_type: str
    strength: float = 1.0
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "memory.connected"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "relationship_id": self.relationship_id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "relationship_type": self.relationship_type,
            "strength": self.strength,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class MemoryMergedEvent:
    """Event emitted when secondary memories are merged into a primary."""
    primary_id: str
    merged_ids: List[str]
    strategy: str
    redirected_relationships: int = 0
    actor: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "memory.merged"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "primary_id": self.primary_id,
            "merged_ids": list(self.merged_ids),
            "strategy": self.strategy,
            "redirected_relationships": self.redirected_relationships,
            "actor": self.actor,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


__all__ = [
    "MemoryStoredEvent",
    "MemoryRecalledEvent",
    "MemoryConnectedEvent",
    "MemoryMergedEvent",
]
