"""
Dirty-set bookkeeping and per-item processing leases.

    CLEAN --ingest--> DIRTY --lease taken--> PROCESSING --ok--> CLEAN
                                               |
                                               +--error--> DIRTY

The dirty flag is cleared when processing starts, not when it ends, so an
ingestion that lands mid-run re-marks the item and it stays dirty afterwards.
Leases live in the store so they exclude callers in other processes too.
"""

from contextlib import contextmanager
from typing import Iterable, List

from common.constants import PATHS
from common.errors import ConcurrentProcessingConflict
from common.utils import setup_logging

from .data_models import ItemState
from .store import SparseMatrixStore, StoreKeys

logger = setup_logging(__name__, PATHS["app_log_file"])


class DirtyTracker:
    def __init__(self, store: SparseMatrixStore, keys: StoreKeys, lease_ttl_seconds: float):
        self.store = store
        self.keys = keys
        self.lease_ttl_seconds = lease_ttl_seconds

    def mark(self, item_ids: Iterable[str]) -> None:
        self.store.add_members(self.keys.dirty(), list(item_ids))

    def clear(self, item_ids: Iterable[str]) -> None:
        self.store.remove_members(self.keys.dirty(), list(item_ids))

    def snapshot(self) -> List[str]:
        """Dirty ids at this instant, sorted for a reproducible processing order."""
        return sorted(self.store.get_members(self.keys.dirty()))

    def is_dirty(self, item_id: str) -> bool:
        return self.store.is_member(self.keys.dirty(), item_id)

    def state(self, item_id: str) -> ItemState:
        if self.store.lease_active(self.keys.lease(item_id)):
            return ItemState.PROCESSING
        if self.is_dirty(item_id):
            return ItemState.DIRTY
        return ItemState.CLEAN

    @contextmanager
    def lease(self, item_id: str):
        """Hold item_id exclusively for the body. Raises ConcurrentProcessingConflict if another caller has it."""
        key = self.keys.lease(item_id)
        token = self.store.acquire_lease(key, self.lease_ttl_seconds)
        if token is None:
            raise ConcurrentProcessingConflict(item_id)
        try:
            yield
        finally:
            self.store.release_lease(key, token)

    @contextmanager
    def processing(self, item_id: str):
        """DIRTY -> PROCESSING for the body; CLEAN on success, back to DIRTY if the body raises."""
        with self.lease(item_id):
            self.clear([item_id])
            try:
                yield
            except BaseException:
                self.mark([item_id])
                logger.warning(f"Processing of {item_id} failed; item marked dirty again")
                raise
