"""
Rule-based relationship detection for newly stored memories.

Candidates come from a broad similarity query. Each candidate is checked for:

- topic overlap: shared analyzer topics other than "general" (conceptual)
- tag similarity: Jaccard overlap of ``context["tags"]`` (conceptual)
- temporal proximity: exponential decay of the creation-time gap (temporal)

At most one edge per type and candidate; the strongest edges win the cap.
"""

import math
import uuid
from typing import Callable, Iterable, List, Optional

from .config import EngineConfig
from .models import MemoryRecord, Relationship

GENERAL_TOPIC = "general"
MIN_TEMPORAL_STRENGTH = 0.1

TopicClassifier = Callable[[str], List[str]]


def jaccard(first: Iterable[str], second: Iterable[str]) -> float:
    """Jaccard similarity of two collections; 0.0 when both are empty."""
    a, b = set(first), set(second)
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def record_tags(record: MemoryRecord) -> List[str]:
    tags = (record.context or {}).get("tags")
    if not isinstance(tags, list):
        return []
    return [tag for tag in tags if isinstance(tag, str) and tag]


class RelationshipDetector:
    """Finds conceptual and temporal links between a record and candidates."""

    def __init__(self, classify_topics: TopicClassifier, config: Optional[EngineConfig] = None):
        """
        Args:
            classify_topics: Maps content to topic names
            config: Thresholds, window and cap
        """
        self.classify_topics = classify_topics
        self.config = config or EngineConfig()

    def detect(self, record: MemoryRecord, candidates: Iterable[MemoryRecord],
               limit: Optional[int] = None) -> List[Relationship]:
        """
        Relationships from record to candidates, strongest first.

        Args:
            record: Newly stored memory (the source of every edge)
            candidates: Existing memories to compare against
            limit: Cap on returned edges (default: max_relationships_per_memory)
        """
        limit = self.config.max_relationships_per_memory if limit is None else limit
        topics = self._topics(record)
        tags = record_tags(record)

        found = []
        for candidate in candidates:
            if candidate.id == record.id:
                continue
            conceptual = self._conceptual(record, topics, tags, candidate)
            if conceptual is not None:
                found.append(conceptual)
            temporal = self._temporal(record, candidate)
            if temporal is not None:
                found.append(temporal)

        found.sort(key=lambda rel: rel.strength, reverse=True)
        return found[:max(limit, 0)]

    def _topics(self, record: MemoryRecord) -> List[str]:
        return [t for t in self.classify_topics(record.content) if t != GENERAL_TOPIC]

    def _conceptual(self, record: MemoryRecord, topics: List[str], tags: List[str],
                    candidate: MemoryRecord) -> Optional[Relationship]:
        candidate_topics = self._topics(candidate) if topics else []
        shared_topics = [t for t in topics if t in candidate_topics]
        candidate_tags = record_tags(candidate)
        tag_score = jaccard(tags, candidate_tags) if tags and candidate_tags else 0.0

        scores = {}
        metadata = {"auto_generated": True}
        if shared_topics:
            scores["topic_overlap"] = self.config.topic_overlap_strength
            metadata["shared_topics"] = shared_topics
        if tag_score > 0 and tag_score >= self.config.tag_similarity_threshold:
            scores["tag_similarity"] = tag_score
            metadata["shared_tags"] = sorted(set(tags) & set(candidate_tags))
            metadata["jaccard_similarity"] = tag_score
        if not scores:
            return None

        method = max(scores, key=scores.get)
        metadata["detection_method"] = method
        return self._edge(record, candidate, "conceptual", scores[method], metadata)

    def _temporal(self, record: MemoryRecord, candidate: MemoryRecord) -> Optional[Relationship]:
        window = self.config.temporal_window_hours * 3600
        if window <= 0:
            return None
        gap = abs((record.created_at - candidate.created_at).total_seconds())
        if gap > window:
            return None

        # 1/e at a third of the window
        strength = math.exp(-gap / (window / 3))
        if strength <= MIN_TEMPORAL_STRENGTH:
            return None

        return self._edge(record, candidate, "temporal", strength, {
            "auto_generated": True,
            "detection_method": "temporal_proximity",
            "time_diff_seconds": round(gap, 3),
            "time_diff_hours": round(gap / 3600, 1),
        })

    @staticmethod
    def _edge(record: MemoryRecord, candidate: MemoryRecord, relationship_type: str,
              strength: float, metadata: dict) -> Relationship:
        return Relationship(
            id=str(uuid.uuid4()),
            source_id=record.id,
            target_id=candidate.id,
            relationship_type=relationship_type,
            strength=min(1.0, max(0.0, strength)),
            bidirectional=True,
            metadata=metadata,
        )
