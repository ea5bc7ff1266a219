from typing import List, Tuple

import pandas as pd

from common.constants import PATHS
from common.errors import InvalidInteraction
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["pipeline_log_file"])


def group_interaction_sets(interactions_df: pd.DataFrame, bucket_col: str, item_col: str) -> List[Tuple[str, List[str]]]:
    """Group interaction rows into (bucket_id, items) sets, buckets and items in first-seen order."""
    df = interactions_df[[bucket_col, item_col]]

    # Rows missing either side cannot form a set member
    before = len(df)
    df = df[(df[bucket_col] != "") & (df[item_col] != "")]
    if len(df) < before:
        logger.warning(f"Dropped {before - len(df)} rows with an empty {bucket_col} or {item_col}")

    grouped = df.groupby(bucket_col, sort=False)[item_col].apply(list)
    logger.info(f"Grouped {len(df):,} rows into {len(grouped):,} interaction sets")
    return list(grouped.items())


def ingest_sets(recommender, matrix_name: str, interaction_sets) -> Tuple[int, int]:
    """Feed sets to the recommender. Invalid sets are logged and counted, not fatal."""
    n_ingested = 0
    n_rejected = 0
    for bucket_id, items in interaction_sets:
        try:
            recommender.add_set(matrix_name, bucket_id, items)
            n_ingested += 1
        except InvalidInteraction as e:
            n_rejected += 1
            logger.warning(f"Rejected set {bucket_id!r}: {e}")
    return n_ingested, n_rejected
