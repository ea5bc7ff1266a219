"""
Type definitions for the similarity engine.
Using TypedDicts for configuration records and small named tuples for results.
"""

from enum import Enum
from typing import List, NamedTuple, TypedDict


class InputMatrixConfig(TypedDict):
    """One interaction signal feeding the recommender."""
    name: str  # e.g. "orders", "likes"; must not contain ":"
    weight: float  # > 0, multiplies this signal's similarity scores
    similarity: str  # registered similarity function name ("jaccard", "cosine", ...)


class RecommenderConfig(TypedDict, total=False):
    """
    Explicit configuration record for one ItemRecommender.
    The recommender owns its matrices; nothing is registered globally.
    """
    name: str  # store namespace for every key this recommender writes
    max_neighbors: int  # cap on each persisted neighbor list
    input_matrices: List[InputMatrixConfig]
    process_workers: int  # threads used by a full process() sweep
    lease_ttl_seconds: float  # expiry for per-item processing leases
    normalize_weights: bool  # divide composites by the total weight


class NeighborEntry(NamedTuple):
    item_id: str
    similarity: float


NeighborList = List[NeighborEntry]


class ProcessSummary(TypedDict):
    """Outcome of one process() sweep."""
    processed: List[str]
    skipped: List[str]  # lease held elsewhere; still dirty
    failed: List[str]  # raised during processing; still dirty


class ItemState(str, Enum):
    """Processing state of one item within one recommender."""
    CLEAN = "clean"
    DIRTY = "dirty"
    PROCESSING = "processing"
