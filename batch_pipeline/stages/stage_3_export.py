from typing import Dict, Tuple

import numpy as np
import scipy.sparse as sp

from common.constants import PATHS
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["pipeline_log_file"])


def build_cooccurrence_matrix(input_matrix) -> Tuple[sp.csr_matrix, Dict[str, int]]:
    """Snapshot one input matrix's co-occurrence counts as a square CSR matrix."""

    # Sorted ids give a stable row/column order between exports
    items = sorted(input_matrix.all_items())
    item_to_idx = {item_id: idx for idx, item_id in enumerate(items)}

    rows, cols, data = [], [], []
    for item_id in items:
        i = item_to_idx[item_id]
        for other, count in input_matrix.cooccurrence_row(item_id):
            j = item_to_idx.get(other)
            if j is None:
                logger.warning(f"Co-occurrence {item_id}->{other} points outside the items index, skipped")
                continue
            rows.append(i)
            cols.append(j)
            data.append(count)

    n_items = len(items)
    matrix = sp.csr_matrix(
        (np.asarray(data, dtype=np.int64), (np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64))),
        shape=(n_items, n_items),
    )
    return matrix, item_to_idx


def marginal_vector(input_matrix, item_to_idx: Dict[str, int]) -> np.ndarray:
    """Marginal counts aligned with the export's row order."""
    items = sorted(item_to_idx, key=item_to_idx.get)
    return np.asarray(input_matrix.marginals(items), dtype=np.int64)
