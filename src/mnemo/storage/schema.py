"""
Database schema management for the memory store.

This module handles:
- Table creation (memories, concepts, memory_concepts, relationships, memory_merges)
- Index creation for performance
- WAL mode configuration
- Foreign key constraints
"""

import aiosqlite

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        content TEXT NOT NULL,
        content_hash TEXT NOT NULL,  -- SHA-256 dedup key
        context TEXT,  -- JSON object
        importance INTEGER DEFAULT 1 CHECK(importance >= 1 AND importance <= 5),
        status TEXT DEFAULT 'active' CHECK(status IN ('active','archived','merged')),
        access_count INTEGER DEFAULT 0,
        last_accessed_at TIMESTAMP,
        vector_id TEXT,
        created_by TEXT,
        metadata TEXT,  -- JSON object
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS concepts (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        type TEXT DEFAULT 'topic' CHECK(type IN ('entity','topic','skill','project','person','custom')),
        confidence REAL CHECK(confidence >= 0 AND confidence <= 1),
        extracted_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS memory_concepts (
        memory_id TEXT NOT NULL,
        concept_id TEXT NOT NULL,
        PRIMARY KEY (memory_id, concept_id),
        FOREIGN KEY (memory_id) REFERENCES memories(id),
        FOREIGN KEY (concept_id) REFERENCES concepts(id)
    );

    CREATE TABLE IF NOT EXISTS relationships (
        id TEXT PRIMARY KEY,
        source_id TEXT NOT NULL,
        target_id TEXT NOT NULL,
        relationship_type TEXT CHECK(relationship_type IN
            ('semantic_similarity','causal','temporal','conceptual','custom')),
        strength REAL CHECK(strength >= 0 AND strength <= 1),
        bidirectional INTEGER DEFAULT 0,
        metadata TEXT,  -- JSON object
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (source_id) REFERENCES memories(id),
        FOREIGN KEY (target_id) REFERENCES memories(id)
    );

    CREATE TABLE IF NOT EXISTS memory_merges (
        id TEXT PRIMARY KEY,
        primary_memory_id TEXT NOT NULL,
        merged_memory_ids TEXT NOT NULL,  -- JSON array
        strategy TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        created_by TEXT
    );

    -- Indexes for performance
    CREATE INDEX IF NOT EXISTS idx_memories_content_hash ON memories(content_hash);
    CREATE INDEX IF NOT EXISTS idx_memories_status ON memories(status);
    CREATE INDEX IF NOT EXISTS idx_memories_created_by ON memories(created_by);
    CREATE INDEX IF NOT EXISTS idx_memories_created_at ON memories(created_at);
    CREATE INDEX IF NOT EXISTS idx_concepts_name ON concepts(name);
    CREATE INDEX IF NOT EXISTS idx_memory_concepts_concept ON memory_concepts(concept_id);
    CREATE INDEX IF NOT EXISTS idx_relationships_source ON relationships(source_id);
    CREATE INDEX IF NOT EXISTS idx_relationships_target ON relationships(target_id);
    CREATE INDEX IF NOT EXISTS idx_relationships_type ON relationships(relationship_type);
    CREATE INDEX IF NOT EXISTS idx_memory_merges_primary ON memory_merges(primary_memory_id);
"""


async def init_database(conn: aiosqlite.Connection, enable_wal: bool = True) -> None:
    """
    Initialize database schema with indexes.

    Args:
        conn: aiosqlite connection
        enable_wal: Enable WAL mode for concurrent writes (default: True)
    """
    if enable_wal:
        await conn.execute("PRAGMA journal_mode=WAL")

    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.executescript(SCHEMA_SQL)
    await conn.commit()
