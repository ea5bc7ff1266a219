def log_process_summary(logger, summary, elapsed_seconds=None):
    logger.info("=== Process Summary ===")
    logger.info("Processed: %s", f"{len(summary['processed']):,}")
    logger.info("Skipped (lease held): %s", f"{len(summary['skipped']):,}")
    logger.info("Failed: %s", f"{len(summary['failed']):,}")
    if elapsed_seconds is not None:
        logger.info(f"Elapsed: {elapsed_seconds:.2f}s")
    if summary["skipped"]:
        logger.warning(f"⚠️  Skipped items stay dirty for the next sweep: {summary['skipped'][:20]}")
    if summary["failed"]:
        logger.error(f"🔴 Failed items stay dirty for the next sweep: {summary['failed'][:20]}")


def log_ingest_summary(logger, matrix_name, n_sets, n_rejected, n_rows):
    logger.info("=== Ingest Summary ===")
    logger.info("Matrix: %s", matrix_name)
    logger.info("Rows read: %s", f"{n_rows:,}")
    logger.info("Sets ingested: %s", f"{n_sets:,}")
    logger.info("Sets rejected: %s", f"{n_rejected:,}")
    total = n_sets + n_rejected
    if total and n_rejected > 0.1 * total:
        logger.warning(f"⚠️  More than 10% of sets were rejected ({100 * n_rejected / total:.1f}%)")


def log_matrix_summary(logger, matrix_name, matrix):
    """Log shape and density of an exported co-occurrence matrix."""
    n_items = matrix.shape[0]
    logger.info(f"=== Co-occurrence Matrix ({matrix_name}) ===")
    logger.info("Shape: %s", matrix.shape)
    logger.info("Non-zero entries: %s", f"{matrix.nnz:,}")
    if n_items:
        logger.info("Density: %.4f%%", 100 * matrix.nnz / (n_items * n_items))
    if matrix.nnz:
        values = matrix.data
        logger.info(f"Min count: {values.min()}")
        logger.info(f"Max count: {values.max()}")
        logger.info(f"Mean count: {values.mean():.2f}")
