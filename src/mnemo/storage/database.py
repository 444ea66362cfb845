"""
Async Memory Database - SQLite Database Gateway
Async/await persistence for memory records, concepts, relationships and the
merge audit trail, using aiosqlite for non-blocking database access.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiosqlite

from ..models import (
    Concept,
    MemoryFilter,
    MemoryRecord,
    MergeAuditEntry,
    Relationship,
    compute_content_hash,
)
from .gateway import DatabaseGateway
from .schema import init_database

logger = logging.getLogger(__name__)

MEMORY_COLUMNS = (
    "id, content, content_hash, context, importance, status, access_count, "
    "last_accessed_at, vector_id, created_by, metadata, created_at, updated_at"
)

# Columns update_memory accepts; everything else is rejected
UPDATABLE_COLUMNS = {
    "content", "content_hash", "context", "importance", "status", "access_count",
    "last_accessed_at", "vector_id", "created_by", "metadata",
}
JSON_COLUMNS = {"context", "metadata"}


def _to_ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _loads(value: Optional[str]) -> Dict[str, Any]:
    return json.loads(value) if value else {}


class AsyncMemoryDatabase(DatabaseGateway):
    """
    SQLite implementation of the Database Gateway.

    Features:
    - Single lazily opened aiosqlite connection
    - WAL mode for concurrent readers (file databases)
    - JSON text columns for context/metadata
    - ':memory:' support for tests
    """

    def __init__(self, db_path: Union[str, Path], enable_wal: bool = True):
        """
        Initialize the database gateway.

        Args:
            db_path: Path to SQLite database file (or ':memory:')
            enable_wal: Enable WAL mode for concurrent writes (default: True)
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else ":memory:"
        if self.db_path != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._enable_wal = enable_wal and self.db_path != ":memory:"
        self._conn: Optional[aiosqlite.Connection] = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path, timeout=30.0)
            self._conn.row_factory = aiosqlite.Row
            await init_database(self._conn, self._enable_wal)
            logger.debug(f"Memory database opened: {self.db_path}")
        return self._conn

    async def initialize(self) -> None:
        """Open the connection and create the schema."""
        await self._get_connection()

    def _row_to_record(self, row: aiosqlite.Row) -> MemoryRecord:
        return MemoryRecord(
            id=row["id"],
            content=row["content"],
            content_hash=row["content_hash"],
            context=_loads(row["context"]),
            importance=row["importance"],
            status=row["status"],
            access_count=row["access_count"] or 0,
            last_accessed_at=_from_ts(row["last_accessed_at"]),
            vector_id=row["vector_id"],
            created_by=row["created_by"],
            metadata=_loads(row["metadata"]),
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
        )

    def _row_to_concept(self, row: aiosqlite.Row) -> Concept:
        return Concept(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            type=row["type"],
            confidence=row["confidence"],
            extracted_at=_from_ts(row["extracted_at"]),
        )

    def _row_to_relationship(self, row: aiosqlite.Row) -> Relationship:
        return Relationship(
            id=row["id"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            relationship_type=row["relationship_type"],
            strength=row["strength"],
            bidirectional=bool(row["bidirectional"]),
            metadata=_loads(row["metadata"]),
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
            last_updated=_from_ts(row["last_updated"]),
        )

    # ==================== Memories ====================

    async def create_memory(self, record: MemoryRecord) -> MemoryRecord:
        conn = await self._get_connection()
        if record.content_hash is None:
            record.content_hash = compute_content_hash(record.content)

        await conn.execute(f"""
            INSERT INTO memories ({MEMORY_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.id,
            record.content,
            record.content_hash,
            json.dumps(record.context or {}),
            record.importance,
            record.status,
            record.access_count,
            _to_ts(record.last_accessed_at),
            record.vector_id,
            record.created_by,
            json.dumps(record.metadata or {}),
            _to_ts(record.created_at),
            _to_ts(record.updated_at),
        ))
        await conn.commit()
        return record

    async def get_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        conn = await self._get_connection()
        async with conn.execute(
            f"SELECT {MEMORY_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def update_memory(self, memory_id: str, updates: Dict[str, Any]) -> Optional[MemoryRecord]:
        """
        Apply a partial update to a memory record.

        Args:
            memory_id: Record id
            updates: Column -> value; context/metadata as dicts, timestamps as datetimes

        Returns:
            Updated MemoryRecord, or None if the record does not exist

        Raises:
            ValueError: If updates names a column that cannot be updated
        """
        unknown = set(updates) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update memory columns: {sorted(unknown)}")

        assignments = []
        params: List[Any] = []
        for column, value in updates.items():
            if column in JSON_COLUMNS:
                value = json.dumps(value or {})
            elif isinstance(value, datetime):
                value = value.isoformat()
            assignments.append(f"{column} = ?")
            params.append(value)

        assignments.append("updated_at = ?")
        params.append(datetime.now().isoformat())
        params.append(memory_id)

        conn = await self._get_connection()
        cursor = await conn.execute(
            f"UPDATE memories SET {', '.join(assignments)} WHERE id = ?", params
        )
        await conn.commit()
        if cursor.rowcount == 0:
            return None
        return await self.get_memory(memory_id)

    async def search_memories(self, memory_filter: MemoryFilter) -> List[MemoryRecord]:
        conditions = []
        params: List[Any] = []
        if memory_filter.content_hash:
            conditions.append("content_hash = ?")
            params.append(memory_filter.content_hash)
        if memory_filter.status:
            conditions.append("status = ?")
            params.append(memory_filter.status)
        if memory_filter.created_by:
            conditions.append("created_by = ?")
            params.append(memory_filter.created_by)

        sql = f"SELECT {MEMORY_COLUMNS} FROM memories"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY created_at DESC, id"

        if memory_filter.limit or memory_filter.offset:
            sql += " LIMIT ? OFFSET ?"
            params.extend([memory_filter.limit or -1, memory_filter.offset or 0])

        conn = await self._get_connection()
        async with conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    # ==================== Concepts ====================

    async def find_concept_by_name(self, name: str) -> Optional[Concept]:
        conn = await self._get_connection()
        async with conn.execute("""
            SELECT id, name, description, type, confidence, extracted_at
            FROM concepts WHERE name = ? LIMIT 1
        """, (name,)) as cursor:
            row = await cursor.fetchone()
        return self._row_to_concept(row) if row else None

    async def create_concept(self, concept: Concept) -> Concept:
        conn = await self._get_connection()
        await conn.execute("""
            INSERT INTO concepts (id, name, description, type, confidence, extracted_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            concept.id,
            concept.name,
            concept.description,
            concept.type,
            concept.confidence,
            _to_ts(concept.extracted_at),
        ))
        await conn.commit()
        return concept

    async def link_memory_concept(self, memory_id: str, concept_id: str) -> None:
        conn = await self._get_connection()
        await conn.execute("""
            INSERT OR IGNORE INTO memory_concepts (memory_id, concept_id) VALUES (?, ?)
        """, (memory_id, concept_id))
        await conn.commit()

    async def clear_memory_concepts(self, memory_id: str) -> None:
        conn = await self._get_connection()
        await conn.execute("DELETE FROM memory_concepts WHERE memory_id = ?", (memory_id,))
        await conn.commit()

    async def get_memory_concepts(self, memory_id: str) -> List[Concept]:
        conn = await self._get_connection()
        async with conn.execute("""
            SELECT c.id, c.name, c.description, c.type, c.confidence, c.extracted_at
            FROM memory_concepts mc
            JOIN concepts c ON c.id = mc.concept_id
            WHERE mc.memory_id = ?
            ORDER BY c.name
        """, (memory_id,)) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_concept(row) for row in rows]

    # ==================== Relationships ====================

    async def create_relationship(self, relationship: Relationship) -> Relationship:
        conn = await self._get_connection()
        await conn.execute("""
            INSERT INTO relationships
            (id, source_id, target_id, relationship_type, strength, bidirectional,
             metadata, created_at, updated_at, last_updated)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            relationship.id,
            relationship.source_id,
            relationship.target_id,
            relationship.relationship_type,
            relationship.strength,
            1 if relationship.bidirectional else 0,
            json.dumps(relationship.metadata or {}),
            _to_ts(relationship.created_at),
            _to_ts(relationship.updated_at),
            _to_ts(relationship.last_updated),
        ))
        await conn.commit()
        return relationship

    async def get_relationships(self, memory_id: str) -> List[Relationship]:
        conn = await self._get_connection()
        async with conn.execute("""
            SELECT id, source_id, target_id, relationship_type, strength, bidirectional,
                   metadata, created_at, updated_at, last_updated
            FROM relationships
            WHERE source_id = ? OR target_id = ?
            ORDER BY created_at
        """, (memory_id, memory_id)) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_relationship(row) for row in rows]

    async def delete_relationship(self, relationship_id: str) -> bool:
        conn = await self._get_connection()
        cursor = await conn.execute("DELETE FROM relationships WHERE id = ?", (relationship_id,))
        await conn.commit()
        return cursor.rowcount > 0

    # ==================== Statistics ====================

    async def _scalar(self, sql: str, params: tuple = ()) -> Any:
        conn = await self._get_connection()
        async with conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def get_memory_stats(self) -> Dict[str, int]:
        return {
            "total_memories": await self._scalar("SELECT COUNT(*) FROM memories"),
            "total_relationships": await self._scalar("SELECT COUNT(*) FROM relationships"),
            "total_concepts": await self._scalar("SELECT COUNT(*) FROM concepts"),
        }

    async def get_average_importance(self) -> float:
        average = await self._scalar("SELECT AVG(importance) FROM memories WHERE status = 'active'")
        return float(average) if average else 1.0

    async def get_most_active_users(self, limit: int = 10) -> List[Dict[str, Any]]:
        conn = await self._get_connection()
        async with conn.execute("""
            SELECT created_by, COUNT(*) AS memory_count
            FROM memories
            WHERE created_by IS NOT NULL AND status = 'active'
            GROUP BY created_by
            ORDER BY memory_count DESC, created_by
            LIMIT ?
        """, (limit,)) as cursor:
            rows = await cursor.fetchall()
        return [{"user_id": row[0], "count": row[1]} for row in rows]

    async def get_top_projects(self, limit: int = 10) -> List[Dict[str, Any]]:
        conn = await self._get_connection()
        async with conn.execute("""
            SELECT json_extract(context, '$.projectName') AS project_name, COUNT(*) AS memory_count
            FROM memories
            WHERE status = 'active' AND json_extract(context, '$.projectName') IS NOT NULL
            GROUP BY project_name
            ORDER BY memory_count DESC, project_name
            LIMIT ?
        """, (limit,)) as cursor:
            rows = await cursor.fetchall()
        return [{"project_name": row[0], "count": row[1]} for row in rows]

    async def get_concept_distribution(self) -> Dict[str, int]:
        conn = await self._get_connection()
        async with conn.execute("SELECT type, COUNT(*) FROM concepts GROUP BY type") as cursor:
            rows = await cursor.fetchall()
        return {row[0]: row[1] for row in rows}

    # ==================== Merge audit ====================

    async def create_merge_audit_trail(self, entry: MergeAuditEntry) -> MergeAuditEntry:
        conn = await self._get_connection()
        await conn.execute("""
            INSERT INTO memory_merges
            (id, primary_memory_id, merged_memory_ids, strategy, created_at, created_by)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            entry.id,
            entry.primary_memory_id,
            json.dumps(list(entry.merged_memory_ids)),
            entry.strategy,
            _to_ts(entry.created_at),
            entry.created_by,
        ))
        await conn.commit()
        return entry

    async def get_merge_audit_trail(self, primary_id: str) -> List[MergeAuditEntry]:
        conn = await self._get_connection()
        async with conn.execute("""
            SELECT id, primary_memory_id, merged_memory_ids, strategy, created_at, created_by
            FROM memory_merges WHERE primary_memory_id = ?
            ORDER BY created_at
        """, (primary_id,)) as cursor:
            rows = await cursor.fetchall()
        return [
            MergeAuditEntry(
                id=row["id"],
                primary_memory_id=row["primary_memory_id"],
                merged_memory_ids=json.loads(row["merged_memory_ids"]),
                strategy=row["strategy"],
                created_at=_from_ts(row["created_at"]),
                created_by=row["created_by"],
            )
            for row in rows
        ]

    async def close(self) -> None:
        """Close connection and cleanup."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self):
        await self._get_connection()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
