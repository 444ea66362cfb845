"""
Embedders for the vector index, plus float32 blob helpers.

- HashingEmbedder: offline, deterministic feature hashing (default)
- AsyncOllamaEmbedder: local Ollama server over httpx
"""

import struct
import hashlib
import logging
from typing import List

import numpy as np

from ..analysis import tokenize

logger = logging.getLogger(__name__)


def embed_to_blob(embedding: List[float]) -> bytes:
    """Convert embedding list to binary blob (float32)."""
    return struct.pack(f'{len(embedding)}f', *embedding)


def blob_to_embed(blob: bytes) -> List[float]:
    """Convert binary blob to embedding list (float32)."""
    if not blob:
        return []
    num_floats = len(blob) // 4
    return list(struct.unpack(f'{num_floats}f', blob))


class HashingEmbedder:
    """
    Bag-of-words feature hashing embedder.

    Each token is hashed into one of ``dim`` buckets with a hash-derived
    sign, then the vector is L2-normalised. Identical token multisets give
    identical vectors, so identical content has similarity 1.0.
    """

    DEFAULT_DIM = 256

    def __init__(self, dim: int = DEFAULT_DIM):
        if dim <= 0:
            raise ValueError(f"dim must be positive, got {dim}")
        self.dim = dim

    def embed_sync(self, text: str) -> List[float]:
        vec = np.zeros(self.dim, dtype=np.float32)
        for token in tokenize(text):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dim
            sign = 1.0 if digest[4] & 1 else -1.0
            vec[bucket] += sign

        norm = np.linalg.norm(vec)
        if norm > 0:
            vec /= norm
        return vec.tolist()

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)

    async def close(self) -> None:
        pass


class AsyncOllamaEmbedder:
    """
    Async local Ollama embeddings

    Models:
    - nomic-embed-text (768 dim, fast)
    - mxbai-embed-large (1024 dim, quality)
    """

    DEFAULT_MODEL = "nomic-embed-text"

    def __init__(self, model: str = DEFAULT_MODEL,
                 base_url: str = "http://localhost:11434",
                 timeout: float = 30.0):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = None

    async def __aenter__(self):
        await self._init_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_client(self) -> None:
        """Initialize HTTP client"""
        import httpx
        self._client = httpx.AsyncClient(timeout=self.timeout)

    async def embed(self, text: str) -> List[float]:
        """Generate embedding via Ollama"""
        if self._client is None:
            await self._init_client()

        response = await self._client.post(
            f"{self.base_url}/api/embeddings",
            json={"model": self.model, "prompt": text}
        )
        response.raise_for_status()
        return response.json()["embedding"]

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None


def create_embedder(config):
    """
    Build the embedder named by an EmbeddingConfig.

    Raises:
        ValueError: Unknown provider
    """
    if config.provider == "hashing":
        return HashingEmbedder(dim=config.dim)
    if config.provider == "ollama":
        return AsyncOllamaEmbedder(model=config.model, base_url=config.base_url)
    raise ValueError(f"Unknown embedding provider: {config.provider}")
