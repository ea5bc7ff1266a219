import numpy as np
import scipy.sparse as sp

from batch_pipeline.stages import stage_1_ingest as stage_1
from batch_pipeline.stages import stage_3_export as stage_3

from common.constants import PATHS, INGEST
from common.logging import log_ingest_summary, log_matrix_summary
from common.utils import setup_logging, safe_read_csv, save_pickle
from similarity_engine import ItemRecommender, build_recommender_config
from server.storage import SqliteMatrixStore

logger = setup_logging(__name__, PATHS["pipeline_log_file"])


def build_default_recommender(db_path=None) -> ItemRecommender:
    """Recommender over the sqlite store with the default configuration."""
    store = SqliteMatrixStore(db_path or PATHS["database"])
    return ItemRecommender(store, build_recommender_config())


def run_stage_1_ingest(recommender, csv_path=None, matrix_name=None, bucket_col=None, item_col=None):
    csv_path = csv_path or PATHS["interactions"]
    matrix_name = matrix_name or INGEST["matrix"]
    bucket_col = bucket_col or INGEST["bucket_col"]
    item_col = item_col or INGEST["item_col"]

    logger.info(f"Loading interactions from {csv_path}...")
    interactions_df = safe_read_csv(csv_path, [bucket_col, item_col])
    logger.info(f"Loaded {len(interactions_df)} interaction rows")

    logger.info("Grouping interaction sets...")
    interaction_sets = stage_1.group_interaction_sets(interactions_df, bucket_col.lower(), item_col.lower())

    logger.info(f"Ingesting into matrix {matrix_name!r}...")
    n_sets, n_rejected = stage_1.ingest_sets(recommender, matrix_name, interaction_sets)

    log_ingest_summary(logger, matrix_name, n_sets, n_rejected, len(interactions_df))
    logger.info("✓ Stage 1 completed")
    return {"sets": n_sets, "rejected": n_rejected, "rows": len(interactions_df)}


def run_stage_2_process(recommender, full=False):
    logger.info(f"Processing {'all' if full else 'dirty'} items...")
    summary = recommender.process(full=full)
    logger.info("✓ Stage 2 completed")
    return summary


def run_stage_3_export(recommender, matrix_name=None, matrix_path=None, idx_path=None):
    matrix_name = matrix_name or INGEST["matrix"]
    matrix_path = matrix_path or PATHS["cooccurrence_matrix"]
    idx_path = idx_path or PATHS["item_idx_pkl"]

    logger.info(f"Exporting co-occurrence matrix {matrix_name!r}...")
    input_matrix = recommender.input_matrix(matrix_name)
    matrix, item_to_idx = stage_3.build_cooccurrence_matrix(input_matrix)
    marginals = stage_3.marginal_vector(input_matrix, item_to_idx)

    log_matrix_summary(logger, matrix_name, matrix)
    logger.info(f"Set count: {input_matrix.set_count()}, items with marginals: {int(np.count_nonzero(marginals))}")

    save_pickle(item_to_idx, idx_path)
    sp.save_npz(matrix_path, matrix)

    logger.info("✓ Stage 3 completed")
    return matrix, item_to_idx


# Stage registry - order and dependencies
STAGES = [
    ("stage_1_ingest", run_stage_1_ingest, []),
    ("stage_2_process", run_stage_2_process, ["stage_1_ingest"]),
    ("stage_3_export", run_stage_3_export, ["stage_1_ingest"]),
]


def run_pipeline(recommender=None, stages=None, **stage_kwargs):
    """
    Run the named stages (all by default) in registry order.

    stage_kwargs maps a stage name to the keyword arguments for that stage,
    e.g. run_pipeline(rec, stage_1_ingest={"csv_path": "..."}).
    """
    recommender = recommender or build_default_recommender()
    selected = [name for name, _, _ in STAGES] if stages is None else list(stages)
    unknown = set(selected) - {name for name, _, _ in STAGES}
    if unknown:
        raise ValueError(f"Unknown stages: {sorted(unknown)}")

    results = {}
    for stage_name, stage_func, _ in STAGES:
        if stage_name not in selected:
            continue
        logger.info(f"Executing {stage_name}...")
        try:
            results[stage_name] = stage_func(recommender, **stage_kwargs.get(stage_name, {}))
        except Exception as e:
            logger.error(f"Stage {stage_name} failed: {e}")
            raise
    return results
