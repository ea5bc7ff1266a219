"""
Batch Pipeline - bulk ingestion, processing and export.

Simple functions for each pipeline stage.
"""

from batch_pipeline.handler import (
    build_default_recommender,
    run_stage_1_ingest,
    run_stage_2_process,
    run_stage_3_export,
    run_pipeline,
    STAGES,
)

__all__ = [
    "build_default_recommender",
    "run_stage_1_ingest",
    "run_stage_2_process",
    "run_stage_3_export",
    "run_pipeline",
    "STAGES",
]
