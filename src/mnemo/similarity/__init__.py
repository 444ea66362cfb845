"""Similarity Oracle interface, embedders and the SQLite vector index."""

from .oracle import SimilarityOracle
from .embeddings import (
    HashingEmbedder,
    AsyncOllamaEmbedder,
    create_embedder,
    embed_to_blob,
    blob_to_embed,
)
from .index import VectorIndex

__all__ = [
    "SimilarityOracle",
    "HashingEmbedder",
    "AsyncOllamaEmbedder",
    "create_embedder",
    "VectorIndex",
    "embed_to_blob",
    "blob_to_embed",
]
