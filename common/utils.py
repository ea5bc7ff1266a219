import logging
import os
import pickle
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from common.constants import RESERVED_ID_CHARACTERS
from common.errors import InvalidInteraction


def setup_logging(stage_name: str, log_file: str, level=logging.INFO):
    """Configure logging for a module or pipeline stage.

    Args:
        stage_name: Name for the logger (typically __name__)
        log_file: Path to the log file to write to
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(stage_name)
    logger.handlers.clear()

    # Disable propagation to root logger to prevent duplicate logging
    logger.propagate = False

    logger.setLevel(level)

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    # File Handler
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(file_handler)

    return logger


def safe_read_csv(filepath: str, usecols: Optional[list[str]] = None) -> pd.DataFrame:
    """Safely read CSV file"""
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        df = pd.read_csv(filepath, dtype=str, keep_default_na=False)

        df.columns = df.columns.str.lower()
        if usecols:
            missing_cols = [c for c in usecols if c.lower() not in df.columns]
            if missing_cols:
                raise ValueError(f"Missing columns in input CSV: {missing_cols}")
            return df[[c.lower() for c in usecols]]
        return df
    except pd.errors.ParserError as e:
        raise pd.errors.ParserError(f"Error parsing {filepath}: {e}")


def validate_token(value, kind: str = "item id") -> str:
    """Reject ids that are empty, not strings, or carry reserved key characters."""
    if not isinstance(value, str) or not value:
        raise InvalidInteraction(f"Invalid {kind}: {value!r} (expected a non-empty string)")
    bad = [ch for ch in RESERVED_ID_CHARACTERS if ch in value]
    if bad:
        raise InvalidInteraction(f"Invalid {kind}: {value!r} contains reserved characters {bad!r}")
    return value


def unique_in_order(items: Iterable[str]) -> list[str]:
    """Collapse repeats, keeping first-seen order."""
    return list(dict.fromkeys(items))


def load_pickle(file_path: str):
    with open(file_path, "rb") as f:
        return pickle.load(f)


def save_pickle(data, filename):
    Path(filename).parent.mkdir(parents=True, exist_ok=True)
    with open(filename, "wb") as f:
        pickle.dump(data, f)
