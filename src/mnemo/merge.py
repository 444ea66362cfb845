"""
Merge algorithms for combining memory records.

Pure functions used by MemoryService.merge_memories:
- merge_content: content per strategy (combine | replace | append)
- deep_merge_metadata: recursive metadata merge
- merge_concepts: concept union by name, higher confidence wins
- redirect_endpoints / has_equivalent_edge: relationship redirection helpers
"""

import copy
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import InvalidStrategyError
from .models import MERGE_STRATEGIES, Concept, Relationship

COMBINE_SEPARATOR = "\n\n---\n\n"
APPEND_SEPARATOR = "\n\n"


def validate_strategy(strategy: str) -> str:
    if strategy not in MERGE_STRATEGIES:
        raise InvalidStrategyError(strategy)
    return strategy


def merge_content(primary: str, secondaries: List[str], strategy: str) -> str:
    """
    Merge record contents.

    Args:
        primary: Primary record content
        secondaries: Secondary contents in input order
        strategy: combine | replace | append

    Returns:
        Merged content

    Raises:
        InvalidStrategyError: For any other strategy
    """
    validate_strategy(strategy)

    if strategy == "combine":
        return COMBINE_SEPARATOR.join([primary] + list(secondaries))
    if strategy == "replace":
        return primary
    return APPEND_SEPARATOR.join([primary] + list(secondaries))


def merge_importance(importances: Iterable[int]) -> int:
    return max(importances)


def _union(existing: List[Any], values: List[Any]) -> List[Any]:
    # Values may be unhashable (dicts), so dedup by equality
    merged = list(existing)
    for value in values:
        if value not in merged:
            merged.append(copy.deepcopy(value))
    return merged


def _merge_value(existing: Any, incoming: Any) -> Any:
    if isinstance(existing, dict) and isinstance(incoming, dict):
        return _merge_dicts(existing, incoming)
    if isinstance(existing, list) or isinstance(incoming, list):
        left = existing if isinstance(existing, list) else [existing]
        right = incoming if isinstance(incoming, list) else [incoming]
        return _union(_union([], left), right)
    if existing == incoming:
        return existing
    return [existing, copy.deepcopy(incoming)]


def _merge_dicts(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in incoming.items():
        if key in merged:
            merged[key] = _merge_value(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def deep_merge_metadata(metadatas: Iterable[Optional[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Deep-merge metadata dicts in order.

    Rules:
    - keys present in one input keep that value
    - conflicting scalars become a list of distinct values
    - lists are unioned without duplicates
    - nested dicts merge recursively

    Example:
        >>> deep_merge_metadata([{"a": 1, "t": ["x"]}, {"a": 2, "t": ["x", "y"]}])
        {'a': [1, 2], 't': ['x', 'y']}
    """
    merged: Dict[str, Any] = {}
    for metadata in metadatas:
        if metadata:
            merged = _merge_dicts(merged, metadata)
    return merged


def merge_concepts(concept_lists: Iterable[List[Concept]]) -> List[Concept]:
    """Union concepts by name; on a name collision keep the higher confidence."""
    by_name: Dict[str, Concept] = {}
    for concepts in concept_lists:
        for concept in concepts:
            current = by_name.get(concept.name)
            if current is None or concept.confidence > current.confidence:
                by_name[concept.name] = concept
    return list(by_name.values())


def redirect_endpoints(relationship: Relationship, secondary_id: str,
                       primary_id: str) -> Tuple[str, str]:
    """Endpoint pair with secondary_id replaced by primary_id."""
    source = primary_id if relationship.source_id == secondary_id else relationship.source_id
    target = primary_id if relationship.target_id == secondary_id else relationship.target_id
    return source, target


def has_equivalent_edge(relationships: Iterable[Relationship], source_id: str,
                        target_id: str, bidirectional: bool) -> bool:
    """
    True if an edge already joins source_id and target_id.

    A reversed pair counts when either edge is bidirectional.
    """
    for rel in relationships:
        if rel.source_id == source_id and rel.target_id == target_id:
            return True
        if (bidirectional or rel.bidirectional) and \
                rel.source_id == target_id and rel.target_id == source_id:
            return True
    return False
