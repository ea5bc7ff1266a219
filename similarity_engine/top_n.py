from typing import Dict

from .data_models import NeighborEntry, NeighborList
from .store import SparseMatrixStore, StoreKeys


def select_neighbors(item_id: str, scores: Dict[str, float], max_neighbors: int) -> NeighborList:
    """Highest scores first, ties by ascending item id, self excluded, capped at max_neighbors."""
    ranked = sorted(
        ((candidate, score) for candidate, score in scores.items() if candidate != item_id),
        key=lambda kv: (-kv[1], kv[0]),
    )
    return [NeighborEntry(candidate, float(score)) for candidate, score in ranked[:max_neighbors]]


class TopNSelector:
    """Selects and persists per-item neighbor lists."""

    def __init__(self, store: SparseMatrixStore, keys: StoreKeys, max_neighbors: int):
        self.store = store
        self.keys = keys
        self.max_neighbors = max_neighbors

    def select(self, item_id: str, scores: Dict[str, float]) -> NeighborList:
        neighbors = select_neighbors(item_id, scores, self.max_neighbors)
        self.persist(item_id, neighbors)
        return neighbors

    def persist(self, item_id: str, neighbors: NeighborList) -> None:
        # whole-list replace; readers see the old list or the new one, never a mix
        self.store.set_ordered_list(self.keys.neighbors(item_id), neighbors)

    def load(self, item_id: str) -> NeighborList:
        entries = self.store.get_ordered_list(self.keys.neighbors(item_id))
        return [NeighborEntry(member, float(score)) for member, score in entries]

    def delete(self, item_id: str) -> None:
        self.store.delete_ordered_list(self.keys.neighbors(item_id))

    def remove_from(self, item_id: str, member: str) -> None:
        self.store.remove_member(self.keys.neighbors(item_id), member)
