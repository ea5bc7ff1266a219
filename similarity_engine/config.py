from typing import List, Optional

from common.constants import DEFAULT_RECOMMENDER, SIMILARITY

from .data_models import InputMatrixConfig, RecommenderConfig
from .similarity_functions import get_similarity_function


def _check_name(value, kind):
    if not isinstance(value, str) or not value or ":" in value:
        raise ValueError(f"Invalid {kind} name: {value!r} (non-empty, no ':')")


def build_recommender_config(
    name: Optional[str] = None,
    input_matrices: Optional[List[InputMatrixConfig]] = None,
    max_neighbors: Optional[int] = None,
    process_workers: Optional[int] = None,
    lease_ttl_seconds: Optional[float] = None,
    normalize_weights: Optional[bool] = None,
) -> RecommenderConfig:
    """Validate a recommender configuration and fill unset fields from SIMILARITY / DEFAULT_RECOMMENDER."""
    config: RecommenderConfig = {
        "name": name if name is not None else DEFAULT_RECOMMENDER["name"],
        "max_neighbors": max_neighbors if max_neighbors is not None else DEFAULT_RECOMMENDER["max_neighbors"],
        "input_matrices": [
            dict(m) for m in (input_matrices if input_matrices is not None else DEFAULT_RECOMMENDER["input_matrices"])
        ],
        "process_workers": process_workers if process_workers is not None else SIMILARITY["process_workers"],
        "lease_ttl_seconds": (
            lease_ttl_seconds if lease_ttl_seconds is not None else SIMILARITY["lease_ttl_seconds"]
        ),
        "normalize_weights": (
            normalize_weights if normalize_weights is not None else SIMILARITY["normalize_weights"]
        ),
    }
    return validate_recommender_config(config)


def validate_recommender_config(config: RecommenderConfig) -> RecommenderConfig:
    _check_name(config.get("name"), "recommender")

    max_neighbors = config.get("max_neighbors")
    if not isinstance(max_neighbors, int) or isinstance(max_neighbors, bool) or max_neighbors < 1:
        raise ValueError(f"max_neighbors must be a positive integer, got {max_neighbors!r}")
    if config.get("process_workers", 1) < 1:
        raise ValueError("process_workers must be at least 1")
    if config.get("lease_ttl_seconds", 1) <= 0:
        raise ValueError("lease_ttl_seconds must be positive")

    matrices = config.get("input_matrices") or []
    if not matrices:
        raise ValueError("A recommender needs at least one input matrix")

    seen = set()
    for m in matrices:
        _check_name(m.get("name"), "input matrix")
        if m["name"] in seen:
            raise ValueError(f"Duplicate input matrix name: {m['name']!r}")
        seen.add(m["name"])
        weight = m.get("weight")
        if not isinstance(weight, (int, float)) or isinstance(weight, bool) or weight <= 0:
            raise ValueError(f"Input matrix {m['name']!r} needs a positive weight, got {weight!r}")
        get_similarity_function(m.get("similarity"))

    return config
