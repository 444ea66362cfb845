"""
Memory Record Engine.

MemoryService orchestrates the Database Gateway, the Similarity Oracle and
the Content Analyzer:

- store_memory: dedup by content hash, concept linking, indexing, auto-links
  (optionally topic, tag and temporal links via RelationshipDetector)
- retrieve_memories / search_memories: similarity-first lookups over active records
- create_connection / get_related_memories: the relationship graph
- get_stats: aggregate statistics
- merge_memories: multi-strategy merge with relationship redirection
"""

import time
import uuid
import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Any, Dict, List, Optional

from .analysis import ContentAnalyzer, ContentAnalysis, tokenize
from .config import EngineConfig
from .errors import (
    InvalidInputError,
    InvalidMemoryIdError,
    MemoryAlreadyMergedError,
    MemoryNotFoundError,
    SecondaryMemoriesNotFoundError,
)
from .event_bus import EventBus, get_event_bus
from .events import (
    MemoryConnectedEvent,
    MemoryMergedEvent,
    MemoryRecalledEvent,
    MemoryStoredEvent,
)
from .locks import MemoryLocks
from .merge import (
    deep_merge_metadata,
    has_equivalent_edge,
    merge_concepts,
    merge_content,
    merge_importance,
    redirect_endpoints,
    validate_strategy,
)
from .models import (
    RELATIONSHIP_TYPES,
    STATUS_ACTIVE,
    STATUS_MERGED,
    Concept,
    MemoryFilter,
    MemoryNode,
    MemoryRecord,
    MemoryStats,
    MergeAuditEntry,
    RelatedMemories,
    RelatedNode,
    Relationship,
    SearchResults,
    compute_content_hash,
)
from .relationships import RelationshipDetector
from .similarity import SimilarityOracle
from .storage import DatabaseGateway

logger = logging.getLogger(__name__)

MAX_LIMIT = 100


# ==================== Validation ====================

def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{name} must be a non-empty string")
    return value


def _require_unit_interval(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
        raise InvalidInputError(f"{name} must be between 0.0 and 1.0")
    return float(value)


def _require_limit(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_LIMIT:
        raise InvalidInputError(f"limit must be an integer between 1 and {MAX_LIMIT}")
    return value


def _require_importance(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise InvalidInputError("importance must be an integer between 1 and 5")
    return value


class MemoryService:
    """
    Memory Record Engine.

    Stateless apart from per-id merge locks; every operation is a coroutine.
    """

    def __init__(self,
                 database: DatabaseGateway,
                 oracle: SimilarityOracle,
                 config: Optional[EngineConfig] = None,
                 analyzer: Optional[ContentAnalyzer] = None,
                 event_bus: Optional[EventBus] = None):
        """
        Args:
            database: Database Gateway implementation
            oracle: Similarity Oracle implementation
            config: Engine settings (thresholds, concept defaults)
            analyzer: Content analyzer (default: ContentAnalyzer())
            event_bus: Bus for memory.* events (default: process-wide bus)
        """
        self.database = database
        self.oracle = oracle
        self.config = config or EngineConfig()
        self.analyzer = analyzer or ContentAnalyzer()
        self.event_bus = event_bus or get_event_bus()
        self.detector = RelationshipDetector(
            lambda content: self.analyzer.classify_topics(content.lower()), self.config
        )
        self._locks = MemoryLocks()

    # ==================== Helpers ====================

    async def _to_node(self, record: MemoryRecord) -> MemoryNode:
        concepts = await self.database.get_memory_concepts(record.id)
        return MemoryNode.from_record(record, concepts)

    def _extract_concepts(self, content: str) -> List[str]:
        """Naive concept extraction: first unique tokens longer than 3 chars."""
        words = [word for word in tokenize(content) if len(word) > 3]
        return list(dict.fromkeys(words))[:self.config.fallback_concept_limit]

    async def _link_concepts(self, memory_id: str, names: List[str]) -> List[Concept]:
        concepts = []
        for name in dict.fromkeys(names):
            concept = await self.database.find_concept_by_name(name)
            if concept is None:
                concept = Concept(
                    id=str(uuid.uuid4()),
                    name=name,
                    type=self.config.default_concept_type,
                    confidence=self.config.default_concept_confidence,
                )
                await self.database.create_concept(concept)
            await self.database.link_memory_concept(memory_id, concept.id)
            concepts.append(concept)
        return concepts

    async def _create_automatic_relationships(self, memory_id: str, content: str) -> int:
        """Link to similar records; failures are logged, never raised."""
        created = 0
        try:
            matches = await self.oracle.find_similar(
                content, self.config.auto_link_threshold, self.config.auto_link_limit
            )
            for match in matches:
                if match.memory_id == memory_id:
                    continue
                await self.database.create_relationship(Relationship(
                    id=str(uuid.uuid4()),
                    source_id=memory_id,
                    target_id=match.memory_id,
                    relationship_type="semantic_similarity",
                    strength=match.similarity,
                    bidirectional=True,
                    metadata={"auto_generated": True},
                ))
                created += 1
        except Exception as e:
            logger.warning(f"Failed to create automatic relationships for {memory_id}: {e}")
        return created

    async def _detect_relationships(self, record: MemoryRecord, already_linked: int) -> int:
        """Topic, tag and temporal links to broadly similar records; best-effort."""
        budget = self.config.max_relationships_per_memory - already_linked
        if budget <= 0:
            return 0
        created = 0
        try:
            matches = await self.oracle.find_similar(
                record.content,
                self.config.detection_candidate_threshold,
                self.config.detection_candidate_limit,
            )
            candidate_ids = [m.memory_id for m in matches if m.memory_id != record.id]
            fetched = await asyncio.gather(*(self.database.get_memory(i) for i in candidate_ids))
            candidates = [r for r in fetched if r is not None and r.is_active]

            for relationship in self.detector.detect(record, candidates, limit=budget):
                await self.database.create_relationship(relationship)
                created += 1
        except Exception as e:
            logger.warning(f"Failed to detect relationships for {record.id}: {e}")
        return created

    def _publish(self, event: Any) -> None:
        self.event_bus.publish(event)

    # ==================== Store / Retrieve ====================

    async def store_memory(self,
                           content: str,
                           context: Optional[Dict[str, Any]] = None,
                           concepts: Optional[List[str]] = None,
                           importance: int = 1) -> MemoryNode:
        """
        Store a memory, or return the existing one with identical content.

        Args:
            content: Memory text
            context: Open context dict (userId becomes the record owner)
            concepts: Concept names; extracted from content when omitted
            importance: 1-5

        Returns:
            MemoryNode with its linked concepts
        """
        _require_text(content, "content")
        _require_importance(importance)
        if context is not None and not isinstance(context, dict):
            raise InvalidInputError("context must be a mapping")
        if concepts is not None and (
            not isinstance(concepts, list) or not all(isinstance(c, str) and c for c in concepts)
        ):
            raise InvalidInputError("concepts must be a list of non-empty strings")
        context = dict(context or {})

        content_hash = compute_content_hash(content)
        existing = await self.database.search_memories(MemoryFilter(content_hash=content_hash, limit=1))
        if existing:
            logger.debug(f"Duplicate content, returning existing memory {existing[0].id}")
            return await self._to_node(existing[0])

        record = MemoryRecord(
            id=str(uuid.uuid4()),
            content=content,
            content_hash=content_hash,
            context=context,
            importance=importance,
            created_by=context.get("userId"),
        )
        if self.config.analyze_on_store:
            analysis = self.analyzer.analyze(content, record.id, record.created_by or "")
            record.metadata["analysis"] = analysis.to_dict()

        await self.database.create_memory(record)

        names = concepts if concepts is not None else self._extract_concepts(content)
        linked = await self._link_concepts(record.id, names)

        vector_id = await self.oracle.index_memory(record.id, content, context)
        await self.database.update_memory(record.id, {"vector_id": vector_id})
        record.vector_id = vector_id

        auto_links = await self._create_automatic_relationships(record.id, content)
        if self.config.detect_relationships:
            auto_links += await self._detect_relationships(record, auto_links)
        logger.debug(f"Stored memory {record.id} ({len(linked)} concepts, {auto_links} auto-links)")

        self._publish(MemoryStoredEvent(
            memory_id=record.id,
            content=content,
            importance=importance,
            concepts=[c.name for c in linked],
            auto_links=auto_links,
        ))
        return MemoryNode.from_record(record, linked)

    async def retrieve_memories(self,
                                query: Optional[str] = None,
                                user_id: Optional[str] = None,
                                limit: int = 20,
                                similarity_threshold: Optional[float] = None) -> List[MemoryNode]:
        """
        List active memories, optionally narrowed by similarity to a query.

        With a query, results follow similarity order; otherwise newest first.
        """
        _require_limit(limit)
        threshold = self.config.default_similarity_threshold
        if similarity_threshold is not None:
            threshold = _require_unit_interval(similarity_threshold, "similarity_threshold")

        candidate_ids: Optional[List[str]] = None
        if query:
            matches = await self.oracle.find_similar(query, threshold, limit)
            candidate_ids = [m.memory_id for m in matches]

        records = await self.database.search_memories(MemoryFilter(
            status=STATUS_ACTIVE,
            created_by=user_id,
            limit=None if candidate_ids is not None else limit,
        ))
        if candidate_ids is not None:
            by_id = {r.id: r for r in records}
            records = [by_id[i] for i in candidate_ids if i in by_id][:limit]

        nodes = list(await asyncio.gather(*(self._to_node(r) for r in records)))
        self._publish(MemoryRecalledEvent(
            query=query,
            result_count=len(nodes),
            top_results=[{"id": n.id, "content": n.content[:100]} for n in nodes[:3]],
        ))
        return nodes

    async def search_memories(self,
                              query: str,
                              similarity_threshold: float = 0.7,
                              limit: int = 10) -> SearchResults:
        """Similarity search returning only records that still exist and are active."""
        start = time.perf_counter()
        _require_text(query, "query")
        _require_unit_interval(similarity_threshold, "similarity_threshold")
        _require_limit(limit)

        matches = await self.oracle.find_similar(query, similarity_threshold, limit)
        records = await asyncio.gather(*(self.database.get_memory(m.memory_id) for m in matches))
        active = [r for r in records if r is not None and r.is_active]
        nodes = list(await asyncio.gather(*(self._to_node(r) for r in active)))

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._publish(MemoryRecalledEvent(
            query=query,
            result_count=len(nodes),
            top_results=[{"id": n.id, "content": n.content[:100]} for n in nodes[:3]],
        ))
        return SearchResults(memories=nodes, total=len(nodes), processing_time_ms=elapsed_ms)

    # ==================== Graph ====================

    async def create_connection(self,
                                source_id: str,
                                target_id: str,
                                relationship_type: str,
                                strength: float = 1.0,
                                bidirectional: bool = False,
                                metadata: Optional[Dict[str, Any]] = None) -> Relationship:
        """
        Create a relationship between two existing memories.

        Raises:
            InvalidMemoryIdError: If either id does not resolve (nothing is written)
        """
        _require_text(source_id, "source_id")
        _require_text(target_id, "target_id")
        if relationship_type not in RELATIONSHIP_TYPES:
            raise InvalidInputError(
                f"Invalid relationship_type: {relationship_type}. "
                f"Must be one of: {sorted(RELATIONSHIP_TYPES)}"
            )
        _require_unit_interval(strength, "strength")
        if metadata is not None and not isinstance(metadata, dict):
            raise InvalidInputError("metadata must be a mapping")

        source, target = await asyncio.gather(
            self.database.get_memory(source_id),
            self.database.get_memory(target_id),
        )
        missing = [mid for mid, rec in ((source_id, source), (target_id, target)) if rec is None]
        if missing:
            raise InvalidMemoryIdError(missing)

        relationship = Relationship(
            id=str(uuid.uuid4()),
            source_id=source_id,
            target_id=target_id,
            relationship_type=relationship_type,
            strength=float(strength),
            bidirectional=bool(bidirectional),
            metadata=dict(metadata or {}),
        )
        await self.database.create_relationship(relationship)

        self._publish(MemoryConnectedEvent(
            relationship_id=relationship.id,
            source_id=source_id,
            target_id=target_id,
            relationship_type=relationship_type,
            strength=relationship.strength,
        ))
        return relationship

    async def get_related_memories(self,
                                   memory_id: str,
                                   max_depth: int = 1,
                                   min_strength: float = 0.0) -> RelatedMemories:
        """
        Breadth-first neighbourhood of a memory.

        Args:
            memory_id: Center memory
            max_depth: Hops to traverse (1 = direct neighbours)
            min_strength: Edges weaker than this are not followed

        Returns:
            RelatedMemories; missing or inactive neighbours are excluded and
            not expanded, and each memory appears once at its shortest distance

        Raises:
            MemoryNotFoundError: If the center memory does not exist
        """
        _require_text(memory_id, "memory_id")
        if isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth < 1:
            raise InvalidInputError("max_depth must be a positive integer")
        _require_unit_interval(min_strength, "min_strength")

        center = await self.database.get_memory(memory_id)
        if center is None:
            raise MemoryNotFoundError(memory_id)
        center_concepts = await self.database.get_memory_concepts(memory_id)

        related: List[RelatedNode] = []
        visited = {memory_id}
        queue = deque([(memory_id, 0, [])])

        while queue:
            current_id, depth, path = queue.popleft()
            for rel in await self.database.get_relationships(current_id):
                if rel.strength is not None and rel.strength < min_strength:
                    continue
                neighbour_id = rel.other_end(current_id)
                if neighbour_id in visited:
                    continue
                visited.add(neighbour_id)

                record = await self.database.get_memory(neighbour_id)
                if record is None or not record.is_active:
                    continue

                node_path = path + [rel]
                related.append(RelatedNode(
                    memory=await self._to_node(record),
                    relationship=rel,
                    distance=depth + 1,
                    path=node_path,
                ))
                if depth + 1 < max_depth:
                    queue.append((neighbour_id, depth + 1, node_path))

        return RelatedMemories(
            center_memory=MemoryNode.from_record(center, center_concepts),
            related_nodes=related,
            clusters=[],
            concepts=list(center_concepts),
        )

    # ==================== Statistics ====================

    async def get_stats(self) -> MemoryStats:
        counts, average, users, projects, distribution = await asyncio.gather(
            self.database.get_memory_stats(),
            self.database.get_average_importance(),
            self.database.get_most_active_users(10),
            self.database.get_top_projects(10),
            self.database.get_concept_distribution(),
        )
        return MemoryStats(
            total_memories=counts.get("total_memories", 0),
            total_relationships=counts.get("total_relationships", 0),
            total_concepts=counts.get("total_concepts", 0),
            average_importance=average,
            most_active_users=list(users),
            top_projects=list(projects),
            concept_distribution=dict(distribution),
        )

    # ==================== Merge ====================

    async def merge_memories(self,
                             primary_id: str,
                             secondary_ids: List[str],
                             strategy: str,
                             actor: Optional[str] = None) -> MemoryNode:
        """
        Merge secondary memories into a primary.

        The primary receives the merged content, importance, metadata and
        concepts; secondaries are marked merged and their relationships are
        moved onto the primary.

        Args:
            primary_id: Memory that survives the merge
            secondary_ids: Memories merged away, in content order
            strategy: combine | replace | append
            actor: Optional user recorded in the audit trail

        Returns:
            Updated primary MemoryNode

        Raises:
            InvalidStrategyError: Unknown strategy
            MemoryNotFoundError: Primary does not exist
            SecondaryMemoriesNotFoundError: Any secondary does not exist
            MemoryAlreadyMergedError: Primary or a secondary has status merged
        """
        validate_strategy(strategy)
        _require_text(primary_id, "primary_id")
        if not isinstance(secondary_ids, list) or not secondary_ids:
            raise InvalidInputError("secondary_ids must be a non-empty list")
        for sid in secondary_ids:
            _require_text(sid, "secondary id")
        secondary_ids = list(dict.fromkeys(secondary_ids))
        if primary_id in secondary_ids:
            raise InvalidInputError("primary_id cannot also be a secondary id")

        async with self._locks.hold([primary_id] + secondary_ids):
            records = await asyncio.gather(
                self.database.get_memory(primary_id),
                *(self.database.get_memory(sid) for sid in secondary_ids),
            )
            primary, secondaries = records[0], list(records[1:])
            if primary is None:
                raise MemoryNotFoundError(primary_id)
            missing = [sid for sid, rec in zip(secondary_ids, secondaries) if rec is None]
            if missing:
                raise SecondaryMemoriesNotFoundError(missing)
            # merged is terminal: never a merge target or source again
            already_merged = [r.id for r in [primary] + secondaries if r.status == STATUS_MERGED]
            if already_merged:
                raise MemoryAlreadyMergedError(already_merged)

            everything = [primary] + secondaries
            concept_lists = await asyncio.gather(
                *(self.database.get_memory_concepts(r.id) for r in everything)
            )

            merged_content = merge_content(primary.content, [s.content for s in secondaries], strategy)
            merged_importance = merge_importance(r.importance for r in everything)
            merged_metadata = deep_merge_metadata(r.metadata for r in everything)
            merged_concepts = merge_concepts(concept_lists)
            content_hash = compute_content_hash(merged_content)

            await self.database.update_memory(primary_id, {
                "content": merged_content,
                "content_hash": content_hash,
                "importance": merged_importance,
                "metadata": merged_metadata,
                "status": STATUS_ACTIVE,
            })

            await self.database.clear_memory_concepts(primary_id)
            for concept in merged_concepts:
                await self.database.link_memory_concept(primary_id, concept.id)

            if primary.vector_id:
                try:
                    await self.oracle.update_vector(primary.vector_id, merged_content, primary.context)
                except Exception as e:
                    logger.warning(f"Failed to refresh vector {primary.vector_id} after merge: {e}")

            merged_at = datetime.now()
            for secondary in secondaries:
                stamped = dict(secondary.metadata or {})
                stamped.update({
                    "merged_into": primary_id,
                    "merged_at": merged_at.isoformat(),
                    "merge_strategy": strategy,
                })
                await self.database.update_memory(secondary.id, {
                    "status": STATUS_MERGED,
                    "metadata": stamped,
                })

            redirected = await self._redirect_relationships(primary_id, secondary_ids, merged_at)

            try:
                await self.database.create_merge_audit_trail(MergeAuditEntry(
                    id=str(uuid.uuid4()),
                    primary_memory_id=primary_id,
                    merged_memory_ids=list(secondary_ids),
                    strategy=strategy,
                    created_at=merged_at,
                    created_by=actor,
                ))
            except Exception as e:
                logger.warning(f"Failed to write merge audit entry for {primary_id}: {e}")

        primary.content = merged_content
        primary.content_hash = content_hash
        primary.importance = merged_importance
        primary.metadata = merged_metadata
        primary.status = STATUS_ACTIVE
        primary.updated_at = merged_at

        logger.info(
            f"Merged {len(secondary_ids)} memories into {primary_id} "
            f"(strategy={strategy}, redirected={redirected})"
        )
        self._publish(MemoryMergedEvent(
            primary_id=primary_id,
            merged_ids=list(secondary_ids),
            strategy=strategy,
            redirected_relationships=redirected,
            actor=actor,
        ))
        return MemoryNode.from_record(primary, merged_concepts)

    async def _redirect_relationships(self, primary_id: str, secondary_ids: List[str],
                                      redirected_at: datetime) -> int:
        """
        Move each secondary's relationships onto the primary.

        Edges between the primary and a secondary are left untouched. Edges
        that would duplicate an existing primary edge are deleted. Per-edge
        failures are logged and skipped.

        Returns:
            Number of relationships recreated on the primary
        """
        primary_relationships = list(await self.database.get_relationships(primary_id))
        redirected = 0

        for secondary_id in secondary_ids:
            for rel in await self.database.get_relationships(secondary_id):
                try:
                    source_id, target_id = redirect_endpoints(rel, secondary_id, primary_id)
                    if source_id == target_id:
                        continue
                    if has_equivalent_edge(primary_relationships, source_id, target_id, rel.bidirectional):
                        await self.database.delete_relationship(rel.id)
                        continue

                    metadata = dict(rel.metadata or {})
                    metadata.update({
                        "redirected_from": secondary_id,
                        "redirected_at": redirected_at.isoformat(),
                    })
                    replacement = Relationship(
                        id=str(uuid.uuid4()),
                        source_id=source_id,
                        target_id=target_id,
                        relationship_type=rel.relationship_type,
                        strength=rel.strength,
                        bidirectional=rel.bidirectional,
                        metadata=metadata,
                    )
                    await self.database.create_relationship(replacement)
                    primary_relationships.append(replacement)
                    await self.database.delete_relationship(rel.id)
                    redirected += 1
                except Exception as e:
                    logger.warning(f"Failed to redirect relationship {rel.id} from {secondary_id}: {e}")

        return redirected

    # ==================== Analysis ====================

    def analyze(self, content: str, record_id: str = "adhoc", user_id: str = "") -> ContentAnalysis:
        """Run the content analyzer on arbitrary text."""
        _require_text(content, "content")
        return self.analyzer.analyze(content, record_id, user_id)
