"""
Similarity strategies over co-occurrence and marginal counts.

Every strategy has the signature fn(cooccurrence, count_a, count_b, total_sets)
and works elementwise on numpy arrays, so a whole similarity row is scored in
one call. A scalar input returns a plain float.
"""

from typing import Callable, Dict

import numpy as np

SimilarityFunction = Callable[..., object]


def _as_result(scores: np.ndarray, scalar_input: bool):
    return float(scores) if scalar_input else scores


# region Strategies
def jaccard(cooccurrence, count_a, count_b, total_sets=None):
    """c / (a + b - c); 0 where the denominator is 0."""
    scalar_input = np.ndim(cooccurrence) == 0 and np.ndim(count_b) == 0
    c = np.asarray(cooccurrence, dtype=np.float64)
    union = np.asarray(count_a, dtype=np.float64) + np.asarray(count_b, dtype=np.float64) - c
    c, union = np.broadcast_arrays(c, union)
    scores = np.divide(c, union, out=np.zeros(c.shape, dtype=np.float64), where=union > 0)
    return _as_result(scores, scalar_input)


def cosine(cooccurrence, count_a, count_b, total_sets=None):
    """c / sqrt(a * b); 0 where either marginal is 0."""
    scalar_input = np.ndim(cooccurrence) == 0 and np.ndim(count_b) == 0
    c = np.asarray(cooccurrence, dtype=np.float64)
    norm = np.sqrt(np.asarray(count_a, dtype=np.float64) * np.asarray(count_b, dtype=np.float64))
    c, norm = np.broadcast_arrays(c, norm)
    scores = np.divide(c, norm, out=np.zeros(c.shape, dtype=np.float64), where=norm > 0)
    return _as_result(scores, scalar_input)


# endregion


SIMILARITY_FUNCTIONS: Dict[str, SimilarityFunction] = {
    "jaccard": jaccard,
    "cosine": cosine,
}


def register_similarity_function(name: str, fn: SimilarityFunction) -> None:
    """Register a custom strategy. Higher must mean more similar; [0, 1] is conventional, not enforced."""
    if not name or ":" in name:
        raise ValueError(f"Invalid similarity function name: {name!r}")
    if not callable(fn):
        raise ValueError(f"Similarity function {name!r} is not callable")
    SIMILARITY_FUNCTIONS[name] = fn


def get_similarity_function(name: str) -> SimilarityFunction:
    try:
        return SIMILARITY_FUNCTIONS[name]
    except KeyError:
        raise ValueError(
            f"Unknown similarity function {name!r}. Available: {sorted(SIMILARITY_FUNCTIONS)}"
        ) from None
