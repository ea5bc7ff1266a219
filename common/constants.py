"""
Centralized configuration for the related-items service.
Defines all paths, engine defaults, and the sample recommender used across stages.
"""

from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.absolute()
DATA_DIR = PROJECT_ROOT / "data"
RAW_DATA_DIR = DATA_DIR / "raw"
STORE_DIR = DATA_DIR / "store"
EXPORT_DIR = DATA_DIR / "export"
LOGS_DIR = PROJECT_ROOT / "logs"
APP_LOGS_DIR = PROJECT_ROOT / "logs" / "app_logs"
PIPELINE_LOGS_DIR = PROJECT_ROOT / "logs" / "pipeline_logs"

date_str = datetime.now().strftime("%m%d%Y")

# Store keys are joined with ":"; ids carrying these characters would collide with other keys
RESERVED_ID_CHARACTERS = (":", "\n", "\r", "\x00")

SIMILARITY = {
    "max_neighbors": 50,
    "process_workers": 4,  # bounded concurrency for a full process() sweep
    "lease_ttl_seconds": 300,  # a crashed holder releases the item after this long
    "normalize_weights": False,  # divide composite scores by the total matrix weight
}

DEFAULT_RECOMMENDER = {
    "name": "related_products",
    "max_neighbors": SIMILARITY["max_neighbors"],
    "input_matrices": [
        {"name": "orders", "weight": 5.0, "similarity": "jaccard"},
        {"name": "likes", "weight": 1.0, "similarity": "cosine"},
    ],
}

INGEST = {
    "bucket_col": "bucket_id",
    "item_col": "item_id",
    "matrix": "orders",
}

SQLITE = {
    "timeout_seconds": 30.0,
}

PATHS = {
    # interaction input
    "interactions": str(RAW_DATA_DIR / "interactions.csv"),
    # backing store
    "database": str(STORE_DIR / "related_items.sqlite3"),
    # exports
    "cooccurrence_matrix": str(EXPORT_DIR / "cooccurrence_matrix.npz"),
    "item_idx_pkl": str(EXPORT_DIR / "item_to_idx.pkl"),
    # logs
    "app_log_file": str(APP_LOGS_DIR / f"{date_str}_app.log"),
    "pipeline_log_file": str(PIPELINE_LOGS_DIR / f"{date_str}_pipeline.log"),
}
