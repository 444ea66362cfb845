"""
Error types for Mnemo.

Every service error carries a stable machine-readable ``code`` and an
HTTP-style ``status_code`` so a transport layer can map it directly:

- InvalidInputError (400, VALIDATION_ERROR)
- InvalidStrategyError (400, INVALID_STRATEGY)
- MemoryAlreadyMergedError (400, ALREADY_MERGED)
- InvalidMemoryIdError (400, INVALID_MEMORY_ID)
- MemoryNotFoundError (404, NOT_FOUND)
- SecondaryMemoriesNotFoundError (404, NOT_FOUND)
- NotImplementedFeatureError (501, NOT_IMPLEMENTED)

ContentAnalysisError is raised by the analyzer when the whole pipeline fails.
"""

from typing import Any, Dict, List, Optional


class MemoryServiceError(Exception):
    """Base exception for memory service errors."""

    def __init__(self, message: str, code: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "error": self.message,
            "code": self.code,
            "status": self.status_code,
        }


class InvalidInputError(MemoryServiceError):
    """Malformed input shape or out-of-range value."""

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR", 400)


class InvalidStrategyError(MemoryServiceError):
    """Unknown merge strategy."""

    def __init__(self, strategy: str):
        super().__init__(f"Unknown merge strategy: {strategy}", "INVALID_STRATEGY", 400)
        self.strategy = strategy


class MemoryAlreadyMergedError(InvalidInputError):
    """A merge names a memory that was already merged away."""

    def __init__(self, memory_ids: List[str]):
        super().__init__(f"Memories already merged: {', '.join(memory_ids)}")
        self.code = "ALREADY_MERGED"
        self.memory_ids = list(memory_ids)


class MemoryNotFoundError(MemoryServiceError):
    """Referenced memory does not exist."""

    def __init__(self, memory_id: str, message: Optional[str] = None,
                 code: str = "NOT_FOUND", status_code: int = 404):
        super().__init__(message or f"Memory with id {memory_id} not found", code, status_code)
        self.memory_id = memory_id


class SecondaryMemoriesNotFoundError(MemoryNotFoundError):
    """One or more secondary memories of a merge do not exist."""

    def __init__(self, missing_ids: List[str]):
        super().__init__(
            ", ".join(missing_ids),
            message=f"Secondary memories not found: {', '.join(missing_ids)}",
        )
        self.missing_ids = list(missing_ids)


class InvalidMemoryIdError(MemoryNotFoundError):
    """A connection endpoint does not resolve to an existing memory."""

    def __init__(self, missing_ids: List[str]):
        super().__init__(
            ", ".join(missing_ids),
            message="One or both memory IDs do not exist",
            code="INVALID_MEMORY_ID",
            status_code=400,
        )
        self.missing_ids = list(missing_ids)


class NotImplementedFeatureError(MemoryServiceError):
    """Reserved for features that are not implemented."""

    def __init__(self, feature: str):
        super().__init__(f"{feature} not yet implemented", "NOT_IMPLEMENTED", 501)


class ContentAnalysisError(Exception):
    """Full-pipeline content analysis failure."""

    def __init__(self, message: str, record_id: str, stage: str,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.record_id = record_id
        self.stage = stage
        self.cause = cause
