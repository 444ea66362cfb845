"""Tests for MemoryService

Engine behaviour over an in-memory gateway and a scripted similarity oracle:
store/dedup, retrieval, search, connections, graph traversal, stats, merge.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from mnemo.config import EngineConfig
from mnemo.errors import (
    InvalidInputError,
    InvalidMemoryIdError,
    InvalidStrategyError,
    MemoryAlreadyMergedError,
    MemoryNotFoundError,
    SecondaryMemoriesNotFoundError,
)
from mnemo.event_bus import EventBus
from mnemo.models import MemoryRecord, Relationship, SimilarMatch, compute_content_hash
from mnemo.service import MemoryService


def _archive(gateway, memory_id):
    gateway.memories[memory_id].status = "archived"


class TestStoreMemory:
    """Tests for store_memory."""

    @pytest.mark.asyncio
    async def test_store_returns_node(self, service, gateway):
        node = await service.store_memory("Fixed the authentication bug in login flow today", importance=3)

        assert node.id in gateway.memories
        assert node.importance == 3
        assert node.status == "active"
        assert node.access_count == 0
        assert node.metadata == {}
        assert node.content_hash == compute_content_hash(node.content)

    @pytest.mark.asyncio
    async def test_dedup_returns_existing_record(self, service, gateway):
        first = await service.store_memory("Hello world")
        second = await service.store_memory("Hello world")

        assert second.id == first.id
        assert gateway.calls["create_memory"] == 1
        assert len(gateway.memories) == 1

    @pytest.mark.asyncio
    async def test_dedup_hit_publishes_nothing(self, service, event_bus):
        events = []
        event_bus.subscribe('memory.stored', events.append)

        await service.store_memory("Hello world")
        await service.store_memory("Hello world")

        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_dedup_hit_keeps_concepts(self, service):
        first = await service.store_memory("Hello world", concepts=["greeting"])
        second = await service.store_memory("Hello world")

        assert [c.name for c in second.concepts] == ["greeting"]
        assert second.id == first.id

    @pytest.mark.asyncio
    async def test_owner_from_context(self, service, gateway):
        node = await service.store_memory("Owned memory", context={"userId": "alice"})

        assert node.created_by == "alice"
        assert gateway.memories[node.id].created_by == "alice"

    @pytest.mark.asyncio
    async def test_fallback_concepts_from_content(self, service):
        node = await service.store_memory("Fixed the authentication bug in login flow today")

        assert [c.name for c in node.concepts] == ["fixed", "authentication", "login", "flow", "today"]
        assert all(c.type == "topic" and c.confidence == 0.8 for c in node.concepts)

    @pytest.mark.asyncio
    async def test_explicit_concepts_are_reused(self, service, gateway):
        await service.store_memory("First python note", concepts=["python"])
        node = await service.store_memory("Second python note", concepts=["python", "notes"])

        assert gateway.calls["create_concept"] == 2
        assert sorted(c.name for c in node.concepts) == ["notes", "python"]

    @pytest.mark.asyncio
    async def test_vector_id_persisted(self, service, gateway, oracle):
        node = await service.store_memory("Indexed memory")

        assert node.vector_id == f"vec-{node.id}"
        assert gateway.memories[node.id].vector_id == node.vector_id
        assert oracle.vectors[node.vector_id] == (node.id, "Indexed memory")

    @pytest.mark.asyncio
    async def test_auto_links_similar_memories(self, service, gateway, oracle):
        existing = await service.store_memory("Deploy the API to staging")
        oracle.scripted = [SimilarMatch(memory_id=existing.id, similarity=0.91)]

        node = await service.store_memory("Deploy the API to production")

        assert oracle.find_calls[-1] == ("Deploy the API to production", 0.8, 5)
        links = [r for r in gateway.relationships.values() if r.source_id == node.id]
        assert len(links) == 1
        link = links[0]
        assert link.target_id == existing.id
        assert link.relationship_type == "semantic_similarity"
        assert link.strength == 0.91
        assert link.bidirectional is True
        assert link.metadata == {"auto_generated": True}

    @pytest.mark.asyncio
    async def test_auto_links_skip_self(self, service, gateway):
        await service.store_memory("Only memory")

        assert gateway.relationships == {}

    @pytest.mark.asyncio
    async def test_auto_link_failure_does_not_fail_store(self, service, gateway, oracle):
        oracle.fail_find = True

        node = await service.store_memory("Stored despite oracle trouble")

        assert node.id in gateway.memories
        assert gateway.relationships == {}

    @pytest.mark.asyncio
    async def test_stored_event(self, service, event_bus, oracle):
        events = []
        event_bus.subscribe('*', events.append)
        existing = await service.store_memory("Deploy the API to staging")
        oracle.scripted = [SimilarMatch(memory_id=existing.id, similarity=0.85)]

        node = await service.store_memory("Deploy the API to production", concepts=["deploy"], importance=2)

        event = events[-1]
        assert event.event_type == "memory.stored"
        assert event.memory_id == node.id
        assert event.importance == 2
        assert event.concepts == ["deploy"]
        assert event.auto_links == 1

    @pytest.mark.asyncio
    async def test_analyze_on_store(self, gateway, oracle):
        service = MemoryService(gateway, oracle, config=EngineConfig(analyze_on_store=True),
                                event_bus=EventBus())

        node = await service.store_memory("Great progress on the Python code")

        analysis = node.metadata["analysis"]
        assert analysis["record_id"] == node.id
        assert analysis["content_hash"] == node.content_hash

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {"content": ""},
        {"content": "   "},
        {"content": "ok", "importance": 0},
        {"content": "ok", "importance": 6},
        {"content": "ok", "concepts": [""]},
        {"content": "ok", "context": "alice"},
    ])
    async def test_invalid_input_writes_nothing(self, service, gateway, kwargs):
        with pytest.raises(InvalidInputError) as exc_info:
            await service.store_memory(**kwargs)

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.status_code == 400
        assert gateway.memories == {}


class TestDetectedRelationships:
    """Tests for topic/tag/temporal links created on store."""

    @pytest.fixture
    def detecting(self, gateway, oracle, event_bus):
        return MemoryService(gateway, oracle, config=EngineConfig(detect_relationships=True),
                             event_bus=event_bus)

    @pytest.mark.asyncio
    async def test_off_by_default(self, service, oracle):
        await service.store_memory("Review the api code")

        assert len(oracle.find_calls) == 1

    @pytest.mark.asyncio
    async def test_links_created_on_store(self, detecting, gateway, oracle, event_bus):
        events = []
        event_bus.subscribe('memory.stored', events.append)
        existing = await detecting.store_memory("Review the api code", context={"tags": ["auth"]})
        oracle.scripted = [SimilarMatch(memory_id=existing.id, similarity=0.9)]

        node = await detecting.store_memory("Refactor the database code", context={"tags": ["auth"]})

        assert oracle.find_calls[-2:] == [
            ("Refactor the database code", 0.8, 5),
            ("Refactor the database code", 0.3, 50),
        ]
        by_type = {r.relationship_type: r for r in gateway.relationships.values() if r.source_id == node.id}
        assert set(by_type) == {"semantic_similarity", "conceptual", "temporal"}
        assert by_type["conceptual"].target_id == existing.id
        assert by_type["conceptual"].metadata["detection_method"] == "tag_similarity"
        assert by_type["conceptual"].metadata["auto_generated"] is True
        assert by_type["temporal"].strength > 0.99
        assert events[-1].auto_links == 3

    @pytest.mark.asyncio
    async def test_inactive_candidates_skipped(self, detecting, gateway, oracle):
        existing = await detecting.store_memory("Review the api code")
        _archive(gateway, existing.id)
        oracle.scripted = [SimilarMatch(memory_id=existing.id, similarity=0.9),
                           SimilarMatch(memory_id="vanished", similarity=0.5)]

        node = await detecting.store_memory("Refactor the database code")

        types = [r.relationship_type for r in gateway.relationships.values() if r.source_id == node.id]
        assert types == ["semantic_similarity", "semantic_similarity"]

    @pytest.mark.asyncio
    async def test_budget_shared_with_semantic_links(self, gateway, oracle, event_bus):
        service = MemoryService(gateway, oracle, event_bus=event_bus, config=EngineConfig(
            detect_relationships=True, max_relationships_per_memory=1,
        ))
        existing = await service.store_memory("Review the api code")
        oracle.scripted = [SimilarMatch(memory_id=existing.id, similarity=0.9)]
        calls_before = len(oracle.find_calls)

        await service.store_memory("Refactor the database code")

        assert len(oracle.find_calls) - calls_before == 1
        assert len(gateway.relationships) == 1

    @pytest.mark.asyncio
    async def test_detection_failure_does_not_fail_store(self, detecting, gateway, oracle):
        existing = await detecting.store_memory("Review the api code")
        oracle.scripted = [SimilarMatch(memory_id=existing.id, similarity=0.9)]
        detecting.detector = MagicMock()
        detecting.detector.detect.side_effect = RuntimeError("detector bug")

        node = await detecting.store_memory("Refactor the database code")

        assert node.id in gateway.memories
        assert [r.relationship_type for r in gateway.relationships.values()] == ["semantic_similarity"]


class TestRetrieveMemories:
    """Tests for retrieve_memories."""

    @pytest.mark.asyncio
    async def test_lists_active_only(self, service, gateway):
        a = await service.store_memory("Memory A")
        b = await service.store_memory("Memory B")
        c = await service.store_memory("Memory C")
        _archive(gateway, c.id)

        nodes = await service.retrieve_memories()

        assert {n.id for n in nodes} == {a.id, b.id}

    @pytest.mark.asyncio
    async def test_limit(self, service):
        for i in range(5):
            await service.store_memory(f"Memory {i}")

        nodes = await service.retrieve_memories(limit=2)

        assert len(nodes) == 2

    @pytest.mark.asyncio
    async def test_filters_by_user(self, service):
        mine = await service.store_memory("Alice memory", context={"userId": "alice"})
        await service.store_memory("Bob memory", context={"userId": "bob"})

        nodes = await service.retrieve_memories(user_id="alice")

        assert [n.id for n in nodes] == [mine.id]

    @pytest.mark.asyncio
    async def test_query_keeps_similarity_order(self, service, gateway, oracle):
        a = await service.store_memory("Memory A")
        b = await service.store_memory("Memory B")
        c = await service.store_memory("Memory C")
        _archive(gateway, c.id)
        oracle.scripted = [
            SimilarMatch(memory_id=c.id, similarity=0.95),
            SimilarMatch(memory_id="ghost", similarity=0.9),
            SimilarMatch(memory_id=b.id, similarity=0.85),
            SimilarMatch(memory_id=a.id, similarity=0.75),
        ]

        nodes = await service.retrieve_memories(query="memory")

        assert [n.id for n in nodes] == [b.id, a.id]
        assert oracle.find_calls[-1] == ("memory", 0.7, 20)

    @pytest.mark.asyncio
    async def test_query_threshold_override(self, service, oracle):
        oracle.scripted = []

        await service.retrieve_memories(query="memory", similarity_threshold=0.4, limit=5)

        assert oracle.find_calls[-1] == ("memory", 0.4, 5)

    @pytest.mark.asyncio
    async def test_recalled_event(self, service, event_bus):
        events = []
        event_bus.subscribe('memory.recalled', events.append)
        await service.store_memory("Memory A")

        await service.retrieve_memories()

        assert events[-1].query is None
        assert events[-1].result_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {"limit": 0},
        {"limit": 101},
        {"query": "x", "similarity_threshold": 1.5},
    ])
    async def test_invalid_input(self, service, kwargs):
        with pytest.raises(InvalidInputError):
            await service.retrieve_memories(**kwargs)


class TestSearchMemories:
    """Tests for search_memories."""

    @pytest.mark.asyncio
    async def test_discards_missing_and_inactive(self, service, gateway, oracle):
        a = await service.store_memory("Memory A")
        b = await service.store_memory("Memory B")
        _archive(gateway, b.id)
        oracle.scripted = [
            SimilarMatch(memory_id="ghost", similarity=0.99),
            SimilarMatch(memory_id=b.id, similarity=0.9),
            SimilarMatch(memory_id=a.id, similarity=0.8),
        ]

        results = await service.search_memories("memory")

        assert [n.id for n in results.memories] == [a.id]
        assert results.total == 1
        assert results.processing_time_ms >= 0

    @pytest.mark.asyncio
    async def test_passes_threshold_and_limit(self, service, oracle):
        oracle.scripted = []

        results = await service.search_memories("query", similarity_threshold=0.5, limit=3)

        assert oracle.find_calls[-1] == ("query", 0.5, 3)
        assert results.total == 0

    @pytest.mark.asyncio
    async def test_exact_content_match(self, service):
        node = await service.store_memory("The quick brown fox")

        results = await service.search_memories("The quick brown fox")

        assert [n.id for n in results.memories] == [node.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {"query": ""},
        {"query": "x", "similarity_threshold": -0.1},
        {"query": "x", "limit": 0},
    ])
    async def test_invalid_input(self, service, kwargs):
        with pytest.raises(InvalidInputError):
            await service.search_memories(**kwargs)


class TestCreateConnection:
    """Tests for create_connection."""

    @pytest.mark.asyncio
    async def test_creates_relationship(self, service, gateway, event_bus):
        events = []
        event_bus.subscribe('memory.connected', events.append)
        a = await service.store_memory("Cause")
        b = await service.store_memory("Effect")

        rel = await service.create_connection(a.id, b.id, "causal", strength=0.7,
                                              metadata={"note": "observed"})

        assert gateway.relationships[rel.id] is rel
        assert rel.source_id == a.id
        assert rel.target_id == b.id
        assert rel.strength == 0.7
        assert rel.bidirectional is False
        assert rel.metadata == {"note": "observed"}
        assert events[-1].relationship_id == rel.id

    @pytest.mark.asyncio
    async def test_duplicates_are_allowed(self, service, gateway):
        a = await service.store_memory("Cause")
        b = await service.store_memory("Effect")

        await service.create_connection(a.id, b.id, "causal")
        await service.create_connection(a.id, b.id, "causal")

        assert len(gateway.relationships) == 2

    @pytest.mark.asyncio
    async def test_missing_target_performs_no_write(self):
        record = MemoryRecord(id="a", content="A")
        database = AsyncMock()
        database.get_memory.side_effect = lambda memory_id: record if memory_id == "a" else None
        service = MemoryService(database, AsyncMock(), event_bus=EventBus())

        with pytest.raises(InvalidMemoryIdError) as exc_info:
            await service.create_connection("a", "missing", "causal")

        error = exc_info.value
        assert isinstance(error, MemoryNotFoundError)
        assert error.code == "INVALID_MEMORY_ID"
        assert error.status_code == 400
        assert error.missing_ids == ["missing"]
        database.create_relationship.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_both_missing(self, service, gateway):
        with pytest.raises(InvalidMemoryIdError) as exc_info:
            await service.create_connection("x", "y", "temporal")

        assert exc_info.value.missing_ids == ["x", "y"]
        assert gateway.relationships == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rel_type, strength", [
        ("friendship", 0.5),
        ("causal", 1.5),
        ("causal", -0.1),
    ])
    async def test_invalid_input(self, service, gateway, rel_type, strength):
        a = await service.store_memory("Cause")
        b = await service.store_memory("Effect")

        with pytest.raises(InvalidInputError):
            await service.create_connection(a.id, b.id, rel_type, strength=strength)
        assert gateway.relationships == {}


class TestGetRelatedMemories:
    """Tests for get_related_memories."""

    async def _chain(self, service):
        a = await service.store_memory("Node A", concepts=["alpha"])
        b = await service.store_memory("Node B")
        c = await service.store_memory("Node C")
        d = await service.store_memory("Node D")
        ab = await service.create_connection(a.id, b.id, "causal", strength=0.9)
        bc = await service.create_connection(b.id, c.id, "temporal", strength=0.8)
        await service.create_connection(d.id, a.id, "conceptual", strength=0.2)
        return a, b, c, d, ab, bc

    @pytest.mark.asyncio
    async def test_direct_neighbours(self, service, gateway):
        a, b, c, d, ab, _ = await self._chain(service)
        before = gateway.calls["get_relationships"]

        related = await service.get_related_memories(a.id)

        assert {n.memory.id for n in related.related_nodes} == {b.id, d.id}
        assert all(n.distance == 1 for n in related.related_nodes)
        assert gateway.calls["get_relationships"] - before == 1
        assert related.center_memory.id == a.id
        assert related.clusters == []
        assert [c.name for c in related.concepts] == ["alpha"]

    @pytest.mark.asyncio
    async def test_depth_two(self, service):
        a, b, c, d, ab, bc = await self._chain(service)

        related = await service.get_related_memories(a.id, max_depth=2)

        by_id = {n.memory.id: n for n in related.related_nodes}
        assert set(by_id) == {b.id, c.id, d.id}
        assert by_id[c.id].distance == 2
        assert [r.id for r in by_id[c.id].path] == [ab.id, bc.id]
        assert by_id[c.id].relationship.id == bc.id

    @pytest.mark.asyncio
    async def test_min_strength(self, service):
        a, b, c, d, _, _ = await self._chain(service)

        related = await service.get_related_memories(a.id, max_depth=3, min_strength=0.5)

        assert {n.memory.id for n in related.related_nodes} == {b.id, c.id}

    @pytest.mark.asyncio
    async def test_cycle_visits_each_memory_once(self, service):
        a, b, c, d, _, _ = await self._chain(service)
        await service.create_connection(c.id, a.id, "causal")

        related = await service.get_related_memories(a.id, max_depth=5)

        ids = [n.memory.id for n in related.related_nodes]
        assert sorted(ids) == sorted({b.id, c.id, d.id})
        assert a.id not in ids

    @pytest.mark.asyncio
    async def test_archived_neighbour_excluded_concepts_kept(self, service, gateway):
        center = await service.store_memory("Center memory", concepts=["project"])
        other = await service.store_memory("Archived memory")
        await service.create_connection(center.id, other.id, "conceptual")
        _archive(gateway, other.id)

        related = await service.get_related_memories(center.id)

        assert related.related_nodes == []
        assert [c.name for c in related.concepts] == ["project"]

    @pytest.mark.asyncio
    async def test_missing_center(self, service):
        with pytest.raises(MemoryNotFoundError) as exc_info:
            await service.get_related_memories("missing")

        assert exc_info.value.code == "NOT_FOUND"
        assert exc_info.value.status_code == 404
        assert exc_info.value.to_dict() == {
            "error": "Memory with id missing not found",
            "code": "NOT_FOUND",
            "status": 404,
        }

    @pytest.mark.asyncio
    async def test_invalid_depth(self, service):
        node = await service.store_memory("Center")

        with pytest.raises(InvalidInputError):
            await service.get_related_memories(node.id, max_depth=0)


class TestGetStats:
    """Tests for get_stats."""

    @pytest.mark.asyncio
    async def test_aggregates(self, service):
        await service.store_memory("One", context={"userId": "alice", "projectName": "acme"},
                                   concepts=["x"], importance=2)
        await service.store_memory("Two", context={"userId": "alice", "projectName": "acme"},
                                   concepts=["y"], importance=4)
        await service.store_memory("Three", context={"userId": "bob"}, concepts=["x"], importance=3)

        stats = await service.get_stats()

        assert stats.total_memories == 3
        assert stats.total_concepts == 2
        assert stats.total_relationships == 0
        assert stats.average_importance == 3.0
        assert stats.most_active_users[0] == {"user_id": "alice", "count": 2}
        assert stats.top_projects == [{"project_name": "acme", "count": 2}]
        assert stats.concept_distribution == {"topic": 2}

    @pytest.mark.asyncio
    async def test_empty_store(self, service):
        stats = await service.get_stats()

        assert stats.total_memories == 0
        assert stats.average_importance == 1.0
        assert stats.to_dict()["most_active_users"] == []


class TestMergeMemories:
    """Tests for merge_memories."""

    async def _trio(self, service):
        p = await service.store_memory("Intro", concepts=["intro"], importance=2)
        s1 = await service.store_memory("Body1", concepts=["body"], importance=5)
        s2 = await service.store_memory("Body2", concepts=["body", "extra"], importance=3)
        return p, s1, s2

    @pytest.mark.asyncio
    async def test_append(self, service, gateway):
        p, s1, s2 = await self._trio(service)

        node = await service.merge_memories(p.id, [s1.id, s2.id], "append")

        assert node.content == "Intro\n\nBody1\n\nBody2"
        assert gateway.memories[p.id].content == "Intro\n\nBody1\n\nBody2"

    @pytest.mark.asyncio
    async def test_combine(self, service):
        p, s1, s2 = await self._trio(service)

        node = await service.merge_memories(p.id, [s1.id, s2.id], "combine")

        assert node.content == "Intro\n\n---\n\nBody1\n\n---\n\nBody2"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("strategy", ["combine", "replace", "append"])
    async def test_importance_is_max(self, service, strategy):
        p, s1, s2 = await self._trio(service)

        node = await service.merge_memories(p.id, [s1.id, s2.id], strategy)

        assert node.importance == 5

    @pytest.mark.asyncio
    async def test_replace_keeps_primary_content(self, service, gateway):
        p, s1, _ = await self._trio(service)

        node = await service.merge_memories(p.id, [s1.id], "replace")

        assert node.content == "Intro"
        assert gateway.memories[p.id].content_hash == compute_content_hash("Intro")

    @pytest.mark.asyncio
    async def test_primary_updates(self, service, gateway, oracle):
        p, s1, s2 = await self._trio(service)
        gateway.memories[p.id].status = "archived"

        node = await service.merge_memories(p.id, [s1.id, s2.id], "combine")

        stored = gateway.memories[p.id]
        assert stored.status == "active"
        assert stored.content_hash == compute_content_hash(node.content)
        assert node.content_hash == stored.content_hash
        assert oracle.updated == [(p.vector_id, node.content)]
        assert sorted(c.name for c in node.concepts) == ["body", "extra", "intro"]
        assert sorted(c.name for c in await gateway.get_memory_concepts(p.id)) == ["body", "extra", "intro"]

    @pytest.mark.asyncio
    async def test_metadata_deep_merge(self, service, gateway):
        p, s1, _ = await self._trio(service)
        gateway.memories[p.id].metadata = {"source": "chat", "tags": ["a"]}
        gateway.memories[s1.id].metadata = {"source": "email", "tags": ["a", "b"]}

        node = await service.merge_memories(p.id, [s1.id], "combine")

        assert node.metadata == {"source": ["chat", "email"], "tags": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_secondaries_are_terminal(self, service, gateway, oracle):
        p, s1, s2 = await self._trio(service)

        await service.merge_memories(p.id, [s1.id, s2.id], "append")

        for sid in (s1.id, s2.id):
            record = gateway.memories[sid]
            assert record.status == "merged"
            assert record.content in ("Body1", "Body2")
            assert record.metadata["merged_into"] == p.id
            assert record.metadata["merge_strategy"] == "append"
            assert "merged_at" in record.metadata

        assert [n.id for n in await service.retrieve_memories()] == [p.id]

        oracle.scripted = [SimilarMatch(memory_id=s1.id, similarity=0.9),
                           SimilarMatch(memory_id=p.id, similarity=0.8)]
        results = await service.search_memories("body")
        assert [n.id for n in results.memories] == [p.id]

        await gateway.create_relationship(Relationship(
            id="late-edge", source_id=p.id, target_id=s2.id, relationship_type="custom"
        ))
        related = await service.get_related_memories(p.id)
        assert related.related_nodes == []

    @pytest.mark.asyncio
    async def test_relationships_move_to_primary(self, service, gateway):
        p, s1, _ = await self._trio(service)
        y = await service.store_memory("Elsewhere")
        out_edge = await service.create_connection(s1.id, y.id, "causal", strength=0.6)
        in_edge = await service.create_connection(y.id, s1.id, "temporal")

        await service.merge_memories(p.id, [s1.id], "combine")

        assert out_edge.id not in gateway.relationships
        assert in_edge.id not in gateway.relationships
        moved = {(r.source_id, r.target_id): r for r in gateway.relationships.values()}
        assert set(moved) == {(p.id, y.id), (y.id, p.id)}
        assert moved[(p.id, y.id)].relationship_type == "causal"
        assert moved[(p.id, y.id)].strength == 0.6
        assert moved[(p.id, y.id)].metadata["redirected_from"] == s1.id
        assert "redirected_at" in moved[(p.id, y.id)].metadata

    @pytest.mark.asyncio
    async def test_redirection_does_not_duplicate_edges(self, service, gateway, event_bus):
        events = []
        event_bus.subscribe('memory.merged', events.append)
        p, s1, _ = await self._trio(service)
        x = await service.store_memory("Shared neighbour")
        kept = await service.create_connection(p.id, x.id, "conceptual", bidirectional=True)
        dropped = await service.create_connection(x.id, s1.id, "conceptual", bidirectional=True)

        await service.merge_memories(p.id, [s1.id], "combine")

        assert list(gateway.relationships) == [kept.id]
        assert dropped.id not in gateway.relationships
        assert events[-1].redirected_relationships == 0

    @pytest.mark.asyncio
    async def test_edge_between_primary_and_secondary_is_kept(self, service, gateway, event_bus):
        events = []
        event_bus.subscribe('memory.merged', events.append)
        p, s1, _ = await self._trio(service)
        edge = await service.create_connection(p.id, s1.id, "causal")

        await service.merge_memories(p.id, [s1.id], "combine")

        assert list(gateway.relationships) == [edge.id]
        stored = gateway.relationships[edge.id]
        assert (stored.source_id, stored.target_id) == (p.id, s1.id)
        assert events[-1].redirected_relationships == 0

    @pytest.mark.asyncio
    async def test_merged_primary_is_rejected(self, service, gateway):
        p, s1, s2 = await self._trio(service)
        await service.merge_memories(p.id, [s1.id], "combine")
        before = gateway.calls["update_memory"]

        with pytest.raises(MemoryAlreadyMergedError) as exc_info:
            await service.merge_memories(s1.id, [s2.id], "combine")

        assert exc_info.value.code == "ALREADY_MERGED"
        assert exc_info.value.status_code == 400
        assert exc_info.value.memory_ids == [s1.id]
        assert gateway.calls["update_memory"] == before
        assert gateway.memories[s1.id].status == "merged"
        assert gateway.memories[s1.id].content == "Body1"
        assert gateway.memories[s2.id].status == "active"

    @pytest.mark.asyncio
    async def test_merged_secondary_is_rejected(self, service, gateway):
        p, s1, s2 = await self._trio(service)
        await service.merge_memories(p.id, [s1.id], "combine")
        before = gateway.calls["update_memory"]

        with pytest.raises(MemoryAlreadyMergedError) as exc_info:
            await service.merge_memories(s2.id, [s1.id], "combine")

        assert isinstance(exc_info.value, InvalidInputError)
        assert exc_info.value.message == f"Memories already merged: {s1.id}"
        assert gateway.calls["update_memory"] == before
        assert gateway.memories[s2.id].content == "Body2"
        assert gateway.memories[s1.id].metadata["merged_into"] == p.id
        assert gateway.audits[-1].primary_memory_id == p.id

    @pytest.mark.asyncio
    async def test_audit_trail(self, service, gateway):
        p, s1, s2 = await self._trio(service)

        await service.merge_memories(p.id, [s1.id, s2.id], "combine", actor="alice")

        (entry,) = await gateway.get_merge_audit_trail(p.id)
        assert entry.merged_memory_ids == [s1.id, s2.id]
        assert entry.strategy == "combine"
        assert entry.created_by == "alice"

    @pytest.mark.asyncio
    async def test_best_effort_steps(self, service, gateway, oracle):
        p, s1, _ = await self._trio(service)
        gateway.fail_audit = True
        oracle.fail_update = True

        node = await service.merge_memories(p.id, [s1.id], "append")

        assert node.content == "Intro\n\nBody1"
        assert gateway.memories[s1.id].status == "merged"

    @pytest.mark.asyncio
    async def test_invalid_strategy_checked_first(self, service, gateway):
        p, s1, _ = await self._trio(service)
        before = gateway.calls["get_memory"]

        with pytest.raises(InvalidStrategyError) as exc_info:
            await service.merge_memories(p.id, [s1.id], "smash")

        assert str(exc_info.value) == "Unknown merge strategy: smash"
        assert exc_info.value.code == "INVALID_STRATEGY"
        assert gateway.calls["get_memory"] == before

    @pytest.mark.asyncio
    async def test_missing_primary(self, service):
        _, s1, _ = await self._trio(service)

        with pytest.raises(MemoryNotFoundError) as exc_info:
            await service.merge_memories("missing", [s1.id], "combine")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_secondaries(self, service, gateway):
        p, s1, _ = await self._trio(service)
        before = gateway.calls["update_memory"]

        with pytest.raises(SecondaryMemoriesNotFoundError) as exc_info:
            await service.merge_memories(p.id, [s1.id, "gone-1", "gone-2"], "combine")

        assert exc_info.value.missing_ids == ["gone-1", "gone-2"]
        assert exc_info.value.message == "Secondary memories not found: gone-1, gone-2"
        assert exc_info.value.code == "NOT_FOUND"
        assert gateway.calls["update_memory"] == before
        assert gateway.memories[s1.id].status == "active"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("secondaries", [[], "s1", [""]])
    async def test_invalid_secondaries(self, service, secondaries):
        p, _, _ = await self._trio(service)

        with pytest.raises(InvalidInputError):
            await service.merge_memories(p.id, secondaries, "combine")

    @pytest.mark.asyncio
    async def test_primary_among_secondaries(self, service):
        p, s1, _ = await self._trio(service)

        with pytest.raises(InvalidInputError):
            await service.merge_memories(p.id, [s1.id, p.id], "combine")

    @pytest.mark.asyncio
    async def test_duplicate_secondary_ids(self, service):
        p, s1, _ = await self._trio(service)

        node = await service.merge_memories(p.id, [s1.id, s1.id], "append")

        assert node.content == "Intro\n\nBody1"

    @pytest.mark.asyncio
    async def test_locks_held_during_merge(self, service, gateway):
        p, s1, _ = await self._trio(service)
        seen = []
        write_audit = gateway.create_merge_audit_trail

        async def audit(entry):
            seen.append((service._locks.is_locked(p.id), service._locks.is_locked(s1.id)))
            return await write_audit(entry)

        gateway.create_merge_audit_trail = audit

        await service.merge_memories(p.id, [s1.id], "combine")

        assert seen == [(True, True)]
        assert not service._locks.is_locked(p.id)
        assert len(service._locks) == 0

    @pytest.mark.asyncio
    async def test_overlapping_merges_serialize(self, service, gateway):
        p, s1, s2 = await self._trio(service)

        await asyncio.gather(
            service.merge_memories(p.id, [s1.id], "append"),
            service.merge_memories(p.id, [s2.id], "append"),
        )

        content = gateway.memories[p.id].content
        assert content.startswith("Intro\n\n")
        assert "Body1" in content
        assert "Body2" in content

    @pytest.mark.asyncio
    async def test_merged_event(self, service, event_bus):
        events = []
        event_bus.subscribe('memory.merged', events.append)
        p, s1, s2 = await self._trio(service)

        await service.merge_memories(p.id, [s1.id, s2.id], "replace", actor="bob")

        event = events[-1]
        assert event.primary_id == p.id
        assert event.merged_ids == [s1.id, s2.id]
        assert event.strategy == "replace"
        assert event.actor == "bob"


class TestAnalyze:
    """Tests for the analyzer delegate."""

    def test_analyze_delegates(self, service):
        analysis = service.analyze("Great progress on the Python code")

        assert analysis.record_id == "adhoc"
        assert analysis.sentiment_score > 0

    def test_analyze_rejects_empty(self, service):
        with pytest.raises(InvalidInputError):
            service.analyze("")
