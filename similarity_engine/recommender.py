"""
ItemRecommender: the public surface of the similarity engine.

Ingestion writes counts and marks items dirty; processing turns counts into
persisted neighbor lists; reads never recompute anything.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Set

from common.constants import PATHS
from common.errors import ConcurrentProcessingConflict, StoreUnavailable, UnknownMatrix
from common.logging import log_process_summary
from common.utils import setup_logging, validate_token

from .config import validate_recommender_config
from .data_models import ItemState, NeighborList, ProcessSummary, RecommenderConfig
from .dirty_tracker import DirtyTracker
from .input_matrix import InputMatrix
from .item_remover import ItemRemover
from .similarity_aggregator import composite_row
from .store import SparseMatrixStore, StoreKeys
from .top_n import TopNSelector

logger = setup_logging(__name__, PATHS["app_log_file"])


class ItemRecommender:
    """Item-to-item recommender over one or more weighted input matrices sharing a store namespace."""

    def __init__(self, store: SparseMatrixStore, config: RecommenderConfig):
        self.config = validate_recommender_config(config)
        self.store = store
        self.name = config["name"]
        self.max_neighbors = config["max_neighbors"]
        self.process_workers = config.get("process_workers", 1)
        self.normalize_weights = config.get("normalize_weights", False)

        self.keys = StoreKeys(self.name)
        self.input_matrices: Dict[str, InputMatrix] = {
            m["name"]: InputMatrix(store, self.keys, m) for m in config["input_matrices"]
        }
        self.selector = TopNSelector(store, self.keys, self.max_neighbors)
        self.tracker = DirtyTracker(store, self.keys, config.get("lease_ttl_seconds", 300))
        self.remover = ItemRemover(self.input_matrices.values(), self.selector, self.tracker)

        logger.info(
            f"ItemRecommender {self.name!r} ready: matrices={list(self.input_matrices.values())}, "
            f"max_neighbors={self.max_neighbors}"
        )

    def input_matrix(self, matrix_name: str) -> InputMatrix:
        try:
            return self.input_matrices[matrix_name]
        except KeyError:
            raise UnknownMatrix(matrix_name) from None

    # region Ingestion
    def add_set(self, matrix_name: str, bucket_id: str, items) -> List[str]:
        """Ingest one interaction set into matrix_name. Validated as a whole before any write."""
        return self.input_matrix(matrix_name).add_set(bucket_id, items)

    def add_single(self, matrix_name: str, bucket_id: str, item_id: str, other_items=()) -> None:
        """Add one item to a set that was already ingested with other_items."""
        self.input_matrix(matrix_name).add_single(bucket_id, item_id, other_items)

    # endregion

    # region Processing
    def process_item(self, item_id: str) -> NeighborList:
        """
        Recompute and persist item_id's neighbor list.

        Raises ConcurrentProcessingConflict if item_id is being processed or
        removed elsewhere. On any other failure the item is left dirty.
        """
        validate_token(item_id)
        with self.tracker.processing(item_id):
            scores = composite_row(item_id, self.input_matrices.values(), self.normalize_weights)
            neighbors = self.selector.select(item_id, scores)
        logger.debug(f"Processed {item_id}: {len(scores)} candidates, {len(neighbors)} kept")
        return neighbors

    def process(self, full: bool = False) -> ProcessSummary:
        """
        Process every item dirty at the start of the run (or every known item with full=True).

        Items marked dirty while the run is going stay dirty for the next run.
        Lease conflicts are skipped and per-item failures recorded; a store
        failure is re-raised once the sweep has finished.
        """
        start = time.time()
        item_ids = sorted(self.all_items()) if full else self.tracker.snapshot()
        summary: ProcessSummary = {"processed": [], "skipped": [], "failed": []}
        store_error: Optional[StoreUnavailable] = None

        logger.info(f"Processing {len(item_ids)} items (full={full}, workers={self.process_workers})")

        def _run(item_id):
            try:
                self.process_item(item_id)
                return item_id, "processed", None
            except ConcurrentProcessingConflict:
                return item_id, "skipped", None
            except Exception as e:
                return item_id, "failed", e

        if self.process_workers > 1 and len(item_ids) > 1:
            with ThreadPoolExecutor(max_workers=self.process_workers) as executor:
                results = list(executor.map(_run, item_ids))
        else:
            results = [_run(item_id) for item_id in item_ids]

        for item_id, outcome, error in results:
            summary[outcome].append(item_id)
            if error is not None:
                logger.error(f"Failed to process {item_id}: {error}")
                if isinstance(error, StoreUnavailable) and store_error is None:
                    store_error = error

        log_process_summary(logger, summary, time.time() - start)
        if store_error is not None:
            raise store_error
        return summary

    # endregion

    # region Reads
    def neighbors_for(self, item_id: str, limit: Optional[int] = None) -> NeighborList:
        """The persisted neighbor list; empty if item_id was never processed. Never recomputes."""
        neighbors = self.selector.load(item_id)
        return neighbors[:limit] if limit is not None else neighbors

    def all_items(self) -> Set[str]:
        items: Set[str] = set()
        for matrix in self.input_matrices.values():
            items |= matrix.all_items()
        return items

    def dirty_items(self) -> List[str]:
        return self.tracker.snapshot()

    def item_state(self, item_id: str) -> ItemState:
        return self.tracker.state(item_id)

    def similarity(self, matrix_name: str, item_a: str, item_b: str) -> float:
        return self.input_matrix(matrix_name).similarity(item_a, item_b)

    # endregion

    def remove_item(self, item_id: str) -> List[str]:
        """Purge item_id everywhere. Exclusive with processing item_id; returns affected neighbor ids."""
        validate_token(item_id)
        return self.remover.remove(item_id)
