"""
Incremental item-to-item similarity engine.
Co-occurrence counting, pluggable similarity strategies, weighted composites and top-N neighbor lists.
"""

from .config import build_recommender_config
from .data_models import (
    InputMatrixConfig,
    ItemState,
    NeighborEntry,
    NeighborList,
    ProcessSummary,
    RecommenderConfig,
)
from .memory_store import InMemoryMatrixStore
from .recommender import ItemRecommender
from .similarity_functions import cosine, get_similarity_function, jaccard, register_similarity_function
from .store import SparseMatrixStore, StoreBatch, StoreKeys

__all__ = [
    "InputMatrixConfig",
    "ItemState",
    "NeighborEntry",
    "NeighborList",
    "ProcessSummary",
    "RecommenderConfig",
    "build_recommender_config",
    "InMemoryMatrixStore",
    "ItemRecommender",
    "SparseMatrixStore",
    "StoreBatch",
    "StoreKeys",
    "cosine",
    "jaccard",
    "get_similarity_function",
    "register_similarity_function",
]
