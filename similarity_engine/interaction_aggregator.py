"""
Turns interaction sets into co-occurrence and marginal increments.

Nothing here computes similarity. A set is validated as a whole, expanded into
one StoreBatch, and applied through a single atomic apply_batch() call.
"""

from itertools import combinations
from collections.abc import Iterable
from typing import List, Sequence

from common.errors import InvalidInteraction
from common.utils import unique_in_order, validate_token

from .store import StoreBatch, StoreKeys


def validate_interaction_set(bucket_id, items) -> List[str]:
    """Validate a whole set before anything is written. Returns the distinct items in first-seen order."""
    validate_token(bucket_id, kind="bucket id")
    if isinstance(items, str) or not isinstance(items, Iterable):
        raise InvalidInteraction(f"Items for bucket {bucket_id!r} must be a sequence of item ids")
    items = list(items)
    if not items:
        raise InvalidInteraction(f"Interaction set {bucket_id!r} is empty")
    for item_id in items:
        validate_token(item_id)
    return unique_in_order(items)


def build_set_batch(keys: StoreKeys, matrix_name: str, distinct_items: Sequence[str]) -> StoreBatch:
    """One set's writes: both directions of every pair, one marginal per item, the set count, index and dirty marks."""
    batch = StoreBatch()
    ccmatrix = keys.ccmatrix(matrix_name)
    for a, b in combinations(distinct_items, 2):
        batch.increment_cell(ccmatrix, a, b)
        batch.increment_cell(ccmatrix, b, a)
    for item_id in distinct_items:
        batch.increment_scalar(keys.marginal(matrix_name, item_id))
    batch.increment_scalar(keys.set_count(matrix_name))
    batch.add_members(keys.items(matrix_name), distinct_items)
    batch.add_members(keys.dirty(), distinct_items)
    return batch


def build_single_batch(keys: StoreKeys, matrix_name: str, item_id: str, other_items: Sequence[str]) -> StoreBatch:
    """Writes for adding one item to an already-ingested set whose other members are other_items."""
    batch = StoreBatch()
    ccmatrix = keys.ccmatrix(matrix_name)
    others = [o for o in other_items if o != item_id]
    for other in others:
        batch.increment_cell(ccmatrix, item_id, other)
        batch.increment_cell(ccmatrix, other, item_id)
    batch.increment_scalar(keys.marginal(matrix_name, item_id))
    batch.add_members(keys.items(matrix_name), [item_id, *others])
    batch.add_members(keys.dirty(), [item_id, *others])
    return batch
