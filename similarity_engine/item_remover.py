from typing import Iterable, List

from common.constants import PATHS
from common.utils import setup_logging

from .dirty_tracker import DirtyTracker
from .input_matrix import InputMatrix
from .top_n import TopNSelector

logger = setup_logging(__name__, PATHS["app_log_file"])


class ItemRemover:
    """Purges one item from every input matrix, every neighbor list and the dirty set."""

    def __init__(self, input_matrices: Iterable[InputMatrix], selector: TopNSelector, tracker: DirtyTracker):
        self.input_matrices = list(input_matrices)
        self.selector = selector
        self.tracker = tracker

    def remove(self, item_id: str) -> List[str]:
        """
        Remove item_id while holding its lease (exclusive with processing it).

        Only items that co-occurred with item_id, or that it listed itself, can
        have it in their neighbor list, so those are the only lists touched.
        They are marked dirty so the next sweep backfills the gap.
        Set counts are not decremented.

        Neighbor lists are cleaned before any count is deleted: the counts are
        how affected items are found, so a retry after a failed call still
        reaches every list.

        Returns the affected neighbor ids.
        """
        with self.tracker.lease(item_id):
            affected = {entry.item_id for entry in self.selector.load(item_id)}
            for matrix in self.input_matrices:
                affected.update(matrix.cooccurring_items(item_id))
            affected.discard(item_id)

            for other in sorted(affected):
                self.selector.remove_from(other, item_id)
            if affected:
                self.tracker.mark(affected)

            for matrix in self.input_matrices:
                matrix.delete_item(item_id)
            self.selector.delete(item_id)
            self.tracker.clear([item_id])

        logger.info(f"Removed item {item_id}; {len(affected)} neighbor lists updated")
        return sorted(affected)
