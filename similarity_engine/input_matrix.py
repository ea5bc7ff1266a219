"""
One named interaction signal: its co-occurrence matrix, marginal counts,
set count, similarity strategy and weight.
"""

from typing import Iterator, List, Set, Tuple

import numpy as np

from common.constants import PATHS
from common.utils import setup_logging, unique_in_order, validate_token

from .data_models import InputMatrixConfig
from .interaction_aggregator import build_set_batch, build_single_batch, validate_interaction_set
from .similarity_functions import get_similarity_function
from .store import SparseMatrixStore, StoreKeys

logger = setup_logging(__name__, PATHS["app_log_file"])


class InputMatrix:
    def __init__(self, store: SparseMatrixStore, keys: StoreKeys, config: InputMatrixConfig):
        self.store = store
        self.keys = keys
        self.name = config["name"]
        self.weight = float(config["weight"])
        self.similarity_name = config["similarity"]
        self.similarity_fn = get_similarity_function(config["similarity"])

    def __repr__(self):
        return f"InputMatrix(name={self.name!r}, weight={self.weight}, similarity={self.similarity_name!r})"

    # region Ingestion
    def add_set(self, bucket_id: str, items) -> List[str]:
        """Record one interaction set. Returns the distinct items that were counted."""
        distinct_items = validate_interaction_set(bucket_id, items)
        batch = build_set_batch(self.keys, self.name, distinct_items)
        self.store.apply_batch(batch)
        logger.debug(f"[{self.name}] add_set bucket={bucket_id} items={len(distinct_items)} writes={len(batch)}")
        return distinct_items

    def add_single(self, bucket_id: str, item_id: str, other_items) -> None:
        """Add item_id to an already-ingested set whose other members are other_items."""
        validate_token(bucket_id, kind="bucket id")
        validate_token(item_id)
        others = unique_in_order(validate_token(o) for o in other_items)
        batch = build_single_batch(self.keys, self.name, item_id, others)
        self.store.apply_batch(batch)
        logger.debug(f"[{self.name}] add_single bucket={bucket_id} item={item_id} others={len(others)}")

    # endregion

    # region Counts
    def cooccurrence(self, item_a: str, item_b: str) -> int:
        return self.store.get_cell(self.keys.ccmatrix(self.name), item_a, item_b)

    def marginal(self, item_id: str) -> int:
        return self.store.get_scalar(self.keys.marginal(self.name, item_id))

    def set_count(self) -> int:
        return self.store.get_scalar(self.keys.set_count(self.name))

    def marginals(self, item_ids: List[str]) -> List[int]:
        return self.store.get_scalars([self.keys.marginal(self.name, item_id) for item_id in item_ids])

    def all_items(self) -> Set[str]:
        return self.store.get_members(self.keys.items(self.name))

    def cooccurrence_row(self, item_id: str) -> List[Tuple[str, int]]:
        return self.store.get_row(self.keys.ccmatrix(self.name), item_id)

    def cooccurring_items(self, item_id: str) -> List[str]:
        return [j for j, _ in self.cooccurrence_row(item_id)]

    # endregion

    # region Similarity
    def similarity(self, item_a: str, item_b: str) -> float:
        if item_a == item_b:
            return 0.0
        c = self.cooccurrence(item_a, item_b)
        if c == 0:
            return 0.0
        a, b = self.marginals([item_a, item_b])
        return float(self.similarity_fn(c, a, b, self.set_count()))

    def similarity_row(self, item_id: str) -> Iterator[Tuple[str, float]]:
        """Lazily yield (candidate, score) for every item co-occurring with item_id. Performs no writes."""
        row = self.cooccurrence_row(item_id)
        if not row:
            return
        candidates = [j for j, _ in row]
        counts = np.fromiter((c for _, c in row), dtype=np.float64, count=len(row))
        marginals = self.marginals([item_id, *candidates])
        scores = self.similarity_fn(
            counts,
            float(marginals[0]),
            np.asarray(marginals[1:], dtype=np.float64),
            self.set_count(),
        )
        scores = np.atleast_1d(scores)
        if scores.shape != (len(candidates),):
            raise ValueError(
                f"Similarity function {self.similarity_name!r} returned shape {scores.shape} "
                f"for {len(candidates)} candidates; strategies must work elementwise"
            )
        for candidate, score in zip(candidates, scores):
            yield candidate, float(score)

    # endregion

    # region Removal
    def delete_item(self, item_id: str) -> List[str]:
        """Purge item_id's counts from this matrix. Returns the items it co-occurred with. Set count is kept."""
        ccmatrix = self.keys.ccmatrix(self.name)
        neighbors = self.cooccurring_items(item_id)
        # mirrored cells first; the row is what finds them on a retry
        for other in neighbors:
            self.store.delete_cell(ccmatrix, other, item_id)
        self.store.delete_row(ccmatrix, item_id)
        self.store.delete_scalar(self.keys.marginal(self.name, item_id))
        self.store.remove_members(self.keys.items(self.name), [item_id])
        return neighbors

    # endregion
