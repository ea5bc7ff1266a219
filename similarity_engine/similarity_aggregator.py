from collections import defaultdict
from typing import Dict, Iterable

from .input_matrix import InputMatrix


def composite_row(item_id: str, input_matrices: Iterable[InputMatrix], normalize_weights: bool = False) -> Dict[str, float]:
    """
    Weighted sum of every matrix's similarity row for item_id.

    The candidate set is the union over matrices; a matrix with no entry for a
    candidate contributes 0. Candidates whose composite is 0 are dropped.
    With normalize_weights the sum is divided by the total weight, which keeps
    the ordering and brings [0, 1] strategies back into [0, 1].
    """
    matrices = list(input_matrices)
    scores: Dict[str, float] = defaultdict(float)
    for matrix in matrices:
        for candidate, score in matrix.similarity_row(item_id):
            scores[candidate] += matrix.weight * score

    if normalize_weights:
        total_weight = sum(m.weight for m in matrices)
        if total_weight > 0:
            for candidate in scores:
                scores[candidate] /= total_weight

    return {candidate: score for candidate, score in scores.items() if score != 0}
