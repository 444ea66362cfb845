"""
Mnemo - Memory Record Engine

Content-hash deduplicated memory records, naive content analysis,
similarity auto-linking, a typed relationship graph and multi-strategy merge.
"""

__version__ = "0.1.0"

from .analysis import ContentAnalyzer, ContentAnalysis, AnalyzerVocabulary
from .config import MnemoConfig, load_config, save_config
from .errors import (
    MemoryServiceError,
    InvalidInputError,
    InvalidStrategyError,
    MemoryAlreadyMergedError,
    MemoryNotFoundError,
    SecondaryMemoriesNotFoundError,
    InvalidMemoryIdError,
    NotImplementedFeatureError,
    ContentAnalysisError,
)
from .event_bus import EventBus, get_event_bus, reset_event_bus
from .models import (
    MemoryRecord,
    Concept,
    Relationship,
    MergeAuditEntry,
    MemoryFilter,
    MemoryNode,
    RelatedNode,
    RelatedMemories,
    SearchResults,
    MemoryStats,
    SimilarMatch,
)
from .service import MemoryService
from .similarity import SimilarityOracle, VectorIndex, HashingEmbedder, AsyncOllamaEmbedder
from .storage import DatabaseGateway, AsyncMemoryDatabase

__all__ = [
    "__version__",
    "MemoryService",
    "ContentAnalyzer",
    "ContentAnalysis",
    "AnalyzerVocabulary",
    "MnemoConfig",
    "load_config",
    "save_config",
    "MemoryServiceError",
    "InvalidInputError",
    "InvalidStrategyError",
    "MemoryAlreadyMergedError",
    "MemoryNotFoundError",
    "SecondaryMemoriesNotFoundError",
    "InvalidMemoryIdError",
    "NotImplementedFeatureError",
    "ContentAnalysisError",
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
    "MemoryRecord",
    "Concept",
    "Relationship",
    "MergeAuditEntry",
    "MemoryFilter",
    "MemoryNode",
    "RelatedNode",
    "RelatedMemories",
    "SearchResults",
    "MemoryStats",
    "SimilarMatch",
    "SimilarityOracle",
    "VectorIndex",
    "HashingEmbedder",
    "AsyncOllamaEmbedder",
    "DatabaseGateway",
    "AsyncMemoryDatabase",
]
