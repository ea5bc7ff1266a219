"""
Sparse storage contract consumed by the similarity engine.

The engine never touches a backend directly. Everything it persists, from
co-occurrence cells and marginal counters to neighbor lists, the dirty set and
processing leases, goes through a SparseMatrixStore. Backends only have to make
each call (and each apply_batch) atomic.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple


@dataclass
class StoreBatch:
    """A group of writes applied all-or-nothing by apply_batch()."""

    cell_increments: Dict[Tuple[str, str, str], int] = field(default_factory=lambda: defaultdict(int))
    scalar_increments: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    set_additions: Dict[str, Set[str]] = field(default_factory=lambda: defaultdict(set))

    def increment_cell(self, matrix: str, i: str, j: str, delta: int = 1) -> None:
        self.cell_increments[(matrix, i, j)] += delta

    def increment_scalar(self, key: str, delta: int = 1) -> None:
        self.scalar_increments[key] += delta

    def add_members(self, key: str, members: Iterable[str]) -> None:
        self.set_additions[key].update(members)

    def __len__(self):
        return len(self.cell_increments) + len(self.scalar_increments) + len(self.set_additions)


class SparseMatrixStore(ABC):
    """Key-addressed sparse 2D numeric store plus the small set/list/lease primitives the engine needs."""

    # --- cells -----------------------------------------------------------

    @abstractmethod
    def get_cell(self, matrix: str, i: str, j: str) -> int:
        """Return the cell value, 0 if absent."""

    @abstractmethod
    def increment_cell(self, matrix: str, i: str, j: str, delta: int = 1) -> int:
        """Atomically add delta to the cell and return the new value."""

    @abstractmethod
    def delete_cell(self, matrix: str, i: str, j: str) -> None:
        ...

    @abstractmethod
    def get_row(self, matrix: str, i: str) -> List[Tuple[str, int]]:
        """Return the non-zero entries of row i as (j, value), sorted by j."""

    @abstractmethod
    def delete_row(self, matrix: str, i: str) -> None:
        ...

    # --- scalars ---------------------------------------------------------

    @abstractmethod
    def get_scalar(self, key: str) -> int:
        ...

    def get_scalars(self, keys: List[str]) -> List[int]:
        return [self.get_scalar(key) for key in keys]

    @abstractmethod
    def increment_scalar(self, key: str, delta: int = 1) -> int:
        ...

    @abstractmethod
    def delete_scalar(self, key: str) -> None:
        ...

    # --- ordered lists ---------------------------------------------------

    @abstractmethod
    def get_ordered_list(self, key: str) -> List[Tuple[str, float]]:
        ...

    @abstractmethod
    def set_ordered_list(self, key: str, entries: List[Tuple[str, float]]) -> None:
        """Replace the whole list in one atomic write."""

    @abstractmethod
    def remove_member(self, key: str, member: str) -> None:
        ...

    @abstractmethod
    def delete_ordered_list(self, key: str) -> None:
        ...

    # --- unordered sets --------------------------------------------------

    @abstractmethod
    def add_members(self, key: str, members: Iterable[str]) -> None:
        ...

    @abstractmethod
    def remove_members(self, key: str, members: Iterable[str]) -> None:
        ...

    @abstractmethod
    def get_members(self, key: str) -> Set[str]:
        ...

    def is_member(self, key: str, member: str) -> bool:
        return member in self.get_members(key)

    # --- batches ---------------------------------------------------------

    @abstractmethod
    def apply_batch(self, batch: StoreBatch) -> None:
        """Apply every write in the batch, or none of them."""

    # --- leases ----------------------------------------------------------

    @abstractmethod
    def acquire_lease(self, key: str, ttl_seconds: float) -> Optional[str]:
        """Take an exclusive lease. Returns an owner token, or None if someone else holds it."""

    @abstractmethod
    def release_lease(self, key: str, token: str) -> None:
        """Release the lease if token still owns it."""

    @abstractmethod
    def lease_active(self, key: str) -> bool:
        ...


class StoreKeys:
    """Key layout for one recommender namespace."""

    def __init__(self, namespace: str):
        self.namespace = namespace

    def ccmatrix(self, matrix_name: str) -> str:
        return f"{self.namespace}:{matrix_name}:ccmatrix"

    def marginal(self, matrix_name: str, item_id: str) -> str:
        return f"{self.namespace}:{matrix_name}:marginal:{item_id}"

    def set_count(self, matrix_name: str) -> str:
        return f"{self.namespace}:{matrix_name}:set_count"

    def items(self, matrix_name: str) -> str:
        return f"{self.namespace}:{matrix_name}:items"

    def neighbors(self, item_id: str) -> str:
        return f"{self.namespace}:neighbors:{item_id}"

    def dirty(self) -> str:
        return f"{self.namespace}:dirty"

    def lease(self, item_id: str) -> str:
        return f"{self.namespace}:lease:{item_id}"
