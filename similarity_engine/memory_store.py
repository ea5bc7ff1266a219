"""
In-process SparseMatrixStore.
Shared safely between threads; state is lost when the process exits.
"""

import threading
import time
import uuid
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .store import SparseMatrixStore, StoreBatch


class InMemoryMatrixStore(SparseMatrixStore):
    """Dict-backed store. Every call runs under one re-entrant lock, which makes each call atomic."""

    def __init__(self):
        self.lock = threading.RLock()
        # matrix -> row -> col -> value
        self.cells: Dict[str, Dict[str, Dict[str, int]]] = defaultdict(lambda: defaultdict(dict))
        self.scalars: Dict[str, int] = {}
        self.ordered_lists: Dict[str, List[Tuple[str, float]]] = {}
        self.sets: Dict[str, Set[str]] = defaultdict(set)
        # key -> (token, expires_at)
        self.leases: Dict[str, Tuple[str, float]] = {}

    def get_cell(self, matrix, i, j):
        with self.lock:
            return self.cells[matrix].get(i, {}).get(j, 0)

    def increment_cell(self, matrix, i, j, delta=1):
        with self.lock:
            return self._increment_cell(matrix, i, j, delta)

    def _increment_cell(self, matrix, i, j, delta):
        row = self.cells[matrix][i]
        value = row.get(j, 0) + delta
        if value == 0:
            row.pop(j, None)
            if not row:
                del self.cells[matrix][i]
        else:
            row[j] = value
        return value

    def delete_cell(self, matrix, i, j):
        with self.lock:
            row = self.cells[matrix].get(i)
            if row is not None:
                row.pop(j, None)
                if not row:
                    del self.cells[matrix][i]

    def get_row(self, matrix, i):
        with self.lock:
            row = self.cells[matrix].get(i, {})
            return sorted((j, v) for j, v in row.items() if v != 0)

    def delete_row(self, matrix, i):
        with self.lock:
            self.cells[matrix].pop(i, None)

    def get_scalar(self, key):
        with self.lock:
            return self.scalars.get(key, 0)

    def get_scalars(self, keys):
        with self.lock:
            return [self.scalars.get(key, 0) for key in keys]

    def increment_scalar(self, key, delta=1):
        with self.lock:
            self.scalars[key] = self.scalars.get(key, 0) + delta
            return self.scalars[key]

    def delete_scalar(self, key):
        with self.lock:
            self.scalars.pop(key, None)

    def get_ordered_list(self, key):
        with self.lock:
            return list(self.ordered_lists.get(key, []))

    def set_ordered_list(self, key, entries):
        new_list = [(str(member), float(score)) for member, score in entries]
        with self.lock:
            self.ordered_lists[key] = new_list

    def remove_member(self, key, member):
        with self.lock:
            if key in self.ordered_lists:
                self.ordered_lists[key] = [e for e in self.ordered_lists[key] if e[0] != member]

    def delete_ordered_list(self, key):
        with self.lock:
            self.ordered_lists.pop(key, None)

    def add_members(self, key, members: Iterable[str]):
        with self.lock:
            self.sets[key].update(members)

    def remove_members(self, key, members: Iterable[str]):
        with self.lock:
            if key in self.sets:
                self.sets[key].difference_update(members)

    def get_members(self, key):
        with self.lock:
            return set(self.sets.get(key, ()))

    def is_member(self, key, member):
        with self.lock:
            return member in self.sets.get(key, ())

    def apply_batch(self, batch: StoreBatch):
        with self.lock:
            for (matrix, i, j), delta in batch.cell_increments.items():
                self._increment_cell(matrix, i, j, delta)
            for key, delta in batch.scalar_increments.items():
                self.scalars[key] = self.scalars.get(key, 0) + delta
            for key, members in batch.set_additions.items():
                self.sets[key].update(members)

    def acquire_lease(self, key, ttl_seconds) -> Optional[str]:
        now = time.monotonic()
        with self.lock:
            held = self.leases.get(key)
            if held is not None and held[1] > now:
                return None
            token = uuid.uuid4().hex
            self.leases[key] = (token, now + ttl_seconds)
            return token

    def release_lease(self, key, token):
        with self.lock:
            held = self.leases.get(key)
            if held is not None and held[0] == token:
                del self.leases[key]

    def lease_active(self, key):
        with self.lock:
            held = self.leases.get(key)
            return held is not None and held[1] > time.monotonic()
