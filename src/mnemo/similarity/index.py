"""
Vector Index - SQLite-backed Similarity Oracle.

Embeddings are stored as float32 BLOBs in ``memory_vectors`` and cached in
memory; search is a vectorized numpy cosine over the cache.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import aiosqlite
import numpy as np

from ..models import SimilarMatch
from .embeddings import blob_to_embed, embed_to_blob
from .oracle import SimilarityOracle

logger = logging.getLogger(__name__)

VECTOR_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS memory_vectors (
        vector_id TEXT PRIMARY KEY,
        memory_id TEXT NOT NULL,
        content TEXT NOT NULL,
        embedding BLOB NOT NULL,  -- float32
        dim INTEGER NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_memory_vectors_memory ON memory_vectors(memory_id);
"""


class VectorIndex(SimilarityOracle):
    """
    Similarity Oracle over persisted embeddings.

    The vector id of an indexed record is its memory id; re-indexing the
    same record replaces its vector.
    """

    def __init__(self, db_path: Union[str, Path], embedder, enable_wal: bool = True):
        """
        Args:
            db_path: SQLite database file (may be shared with AsyncMemoryDatabase) or ':memory:'
            embedder: Object with ``async embed(text) -> List[float]``
            enable_wal: Enable WAL mode (default: True)
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else ":memory:"
        if self.db_path != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._enable_wal = enable_wal and self.db_path != ":memory:"
        self.embedder = embedder
        self._conn: Optional[aiosqlite.Connection] = None

        # vector_id -> (memory_id, content, embedding)
        self._cache: Dict[str, Tuple[str, str, np.ndarray]] = {}
        self._cache_loaded = False

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path, timeout=30.0)
            if self._enable_wal:
                await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.executescript(VECTOR_SCHEMA_SQL)
            await self._conn.commit()
        return self._conn

    async def _load_cache(self) -> None:
        if self._cache_loaded:
            return
        conn = await self._get_connection()
        async with conn.execute(
            "SELECT vector_id, memory_id, content, embedding FROM memory_vectors"
        ) as cursor:
            async for row in cursor:
                embedding = blob_to_embed(row[3])
                if embedding:
                    self._cache[row[0]] = (row[1], row[2], np.array(embedding, dtype=np.float32))
        self._cache_loaded = True
        logger.debug(f"Loaded {len(self._cache)} vectors into cache")

    async def _write_vector(self, vector_id: str, memory_id: str, content: str) -> None:
        embedding = await self.embedder.embed(content)
        conn = await self._get_connection()
        await conn.execute("""
            INSERT OR REPLACE INTO memory_vectors
            (vector_id, memory_id, content, embedding, dim, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            vector_id,
            memory_id,
            content,
            embed_to_blob(embedding),
            len(embedding),
            datetime.now().isoformat(),
        ))
        await conn.commit()
        self._cache[vector_id] = (memory_id, content, np.array(embedding, dtype=np.float32))

    async def index_memory(self, memory_id: str, content: str,
                           context: Optional[Dict[str, Any]] = None) -> str:
        await self._write_vector(memory_id, memory_id, content)
        return memory_id

    async def update_vector(self, vector_id: str, content: str,
                            context: Optional[Dict[str, Any]] = None) -> None:
        """
        Re-embed content under an existing vector id.

        Raises:
            KeyError: If vector_id is not indexed
        """
        conn = await self._get_connection()
        async with conn.execute(
            "SELECT memory_id FROM memory_vectors WHERE vector_id = ?", (vector_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            raise KeyError(f"Vector not found: {vector_id}")
        await self._write_vector(vector_id, row[0], content)

    async def delete_vector(self, vector_id: str) -> bool:
        conn = await self._get_connection()
        cursor = await conn.execute("DELETE FROM memory_vectors WHERE vector_id = ?", (vector_id,))
        await conn.commit()
        self._cache.pop(vector_id, None)
        return cursor.rowcount > 0

    async def find_similar(self, text: str, threshold: float = 0.7,
                           limit: int = 10) -> List[SimilarMatch]:
        """
        Cosine similarity search.

        Args:
            text: Query text (embedded with the configured embedder)
            threshold: Minimum similarity (inclusive)
            limit: Max results

        Returns:
            SimilarMatch list sorted by similarity descending
        """
        await self._load_cache()
        query_vec = np.array(await self.embedder.embed(text), dtype=np.float32)
        query_norm = np.linalg.norm(query_vec)
        if query_norm == 0 or not self._cache:
            return []

        entries = [
            (vector_id, memory_id, content, vec)
            for vector_id, (memory_id, content, vec) in self._cache.items()
            if vec.shape == query_vec.shape
        ]
        if not entries:
            return []

        # Vectorized cosine similarity: (n_vectors, dim) . (dim,)
        matrix = np.stack([entry[3] for entry in entries])
        norms = np.linalg.norm(matrix, axis=1)
        dots = matrix @ query_vec
        similarities = np.divide(dots, norms * query_norm,
                                 out=np.zeros_like(dots),
                                 where=(norms * query_norm) > 0)

        # float32 rounding tolerance
        valid = np.where(similarities >= threshold - 1e-6)[0]
        ranked = sorted(valid, key=lambda i: -float(similarities[i]))

        return [
            SimilarMatch(
                memory_id=entries[i][1],
                similarity=min(1.0, float(similarities[i])),
                content=entries[i][2],
            )
            for i in ranked[:limit]
        ]

    async def close(self) -> None:
        """Close connection and cleanup."""
        if self._conn:
            await self._conn.close()
            self._conn = None
        self._cache.clear()
        self._cache_loaded = False
        await self.embedder.close()

    async def __aenter__(self):
        await self._get_connection()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
