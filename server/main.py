import traceback
from typing import Optional
import threading
from datetime import datetime
import uuid

from fastapi import Depends, FastAPI, HTTPException

from common.constants import PATHS
from common.errors import ConcurrentProcessingConflict, InvalidInteraction, StoreUnavailable, UnknownMatrix
from common.utils import setup_logging
from server.pipeline_state import ProcessRunStateManager
from server.recommendation_service import SimilarityService
from server.schemas import (
    InteractionSetRequest,
    InteractionSetResponse,
    ItemStateResponse,
    ItemsResponse,
    Neighbor,
    NeighborsResponse,
    ProcessResponse,
    ProcessRunResponse,
    RemoveItemResponse,
)

app = FastAPI(title="Related Items API", version="0.1.0")

logger = setup_logging(__name__, PATHS["app_log_file"])

_service: Optional[SimilarityService] = None
_service_lock = threading.Lock()
run_state = ProcessRunStateManager()


def get_service() -> SimilarityService:
    """The process-wide service, opened on first use."""
    global _service
    with _service_lock:
        if _service is None:
            _service = SimilarityService()
        return _service


def _require_ready(service: SimilarityService):
    if not service.ready:
        raise HTTPException(status_code=503, detail=f"Similarity service is not available: {service.init_error}")


def _to_http_error(e: Exception, where: str) -> HTTPException:
    """Map engine errors to status codes; anything unexpected is logged with its traceback."""
    if isinstance(e, InvalidInteraction):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, UnknownMatrix):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConcurrentProcessingConflict):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, StoreUnavailable):
        logger.error(f"ERROR in {where}: store unavailable: {e}")
        return HTTPException(status_code=503, detail=str(e))
    error_msg = f"{str(e)}\n{traceback.format_exc()}"
    logger.error(f"ERROR in {where}: {error_msg}")
    return HTTPException(status_code=500, detail=str(e))


@app.get("/health")
def health(service: SimilarityService = Depends(get_service)):
    return {
        "status": "ok",
        "similarity_ready": service.ready,
        "error": service.init_error,
    }


@app.get("/similarity/status")
def similarity_status(service: SimilarityService = Depends(get_service)):
    """Report readiness of the store and the recommender."""
    return service.status()


@app.post("/similarity/reload")
def reload_similarity(service: SimilarityService = Depends(get_service)):
    """Re-open the store and rebuild the recommender, e.g. after the database file was restored."""
    service.reinitialize()
    if not service.ready:
        raise HTTPException(status_code=503, detail=f"Reload failed: {service.init_error}")
    logger.info("✓ SimilarityService reinitialized")
    return service.status()


@app.post("/sets", response_model=InteractionSetResponse)
def add_set(payload: InteractionSetRequest, service: SimilarityService = Depends(get_service)):
    _require_ready(service)
    try:
        distinct_items = service.add_set(payload.matrix, payload.bucket_id, payload.items)
        logger.info(f"Set: matrix={payload.matrix}, bucket={payload.bucket_id}, items={len(distinct_items)}")
        return InteractionSetResponse(status="ok", distinct_items=distinct_items)
    except Exception as e:
        raise _to_http_error(e, "/sets")


@app.post("/process", response_model=ProcessResponse)
def process(full: bool = False, service: SimilarityService = Depends(get_service)):
    _require_ready(service)
    try:
        return ProcessResponse(**service.process(full=full))
    except Exception as e:
        raise _to_http_error(e, "/process")


@app.post("/items/{item_id}/process", response_model=NeighborsResponse)
def process_item(item_id: str, service: SimilarityService = Depends(get_service)):
    _require_ready(service)
    try:
        neighbors = service.process_item(item_id)
        return NeighborsResponse(
            item_id=item_id, neighbors=[Neighbor(item_id=n.item_id, similarity=n.similarity) for n in neighbors]
        )
    except Exception as e:
        raise _to_http_error(e, f"/items/{item_id}/process")


@app.get("/items/{item_id}/neighbors", response_model=NeighborsResponse)
def neighbors(item_id: str, limit: Optional[int] = None, service: SimilarityService = Depends(get_service)):
    """Persisted neighbors of item_id; empty if it has never been processed."""
    _require_ready(service)
    if limit is not None and limit < 0:
        raise HTTPException(status_code=422, detail="limit must be non-negative")
    try:
        result = service.neighbors_for(item_id, limit=limit)
        return NeighborsResponse(
            item_id=item_id, neighbors=[Neighbor(item_id=n.item_id, similarity=n.similarity) for n in result]
        )
    except Exception as e:
        raise _to_http_error(e, f"/items/{item_id}/neighbors")


@app.get("/items/{item_id}/state", response_model=ItemStateResponse)
def item_state(item_id: str, service: SimilarityService = Depends(get_service)):
    _require_ready(service)
    try:
        return ItemStateResponse(item_id=item_id, state=service.item_state(item_id))
    except Exception as e:
        raise _to_http_error(e, f"/items/{item_id}/state")


@app.get("/items", response_model=ItemsResponse)
def items(service: SimilarityService = Depends(get_service)):
    _require_ready(service)
    try:
        all_items = service.all_items()
        return ItemsResponse(items=all_items, count=len(all_items))
    except Exception as e:
        raise _to_http_error(e, "/items")


@app.delete("/items/{item_id}", response_model=RemoveItemResponse)
def remove_item(item_id: str, service: SimilarityService = Depends(get_service)):
    _require_ready(service)
    try:
        affected = service.remove_item(item_id)
        logger.info(f"Removed item {item_id}, {len(affected)} neighbor lists affected")
        return RemoveItemResponse(status="ok", item_id=item_id, affected=affected)
    except Exception as e:
        raise _to_http_error(e, f"DELETE /items/{item_id}")


# ===================================================================
# BACKGROUND PROCESS RUN ENDPOINTS
# ===================================================================


@app.get("/process/status")
def get_process_status():
    """Status of the most recent background sweep."""
    return run_state.get_status()


def _run_process_background(service: SimilarityService, full: bool):
    """Execute a full sweep in the background, recording the outcome in run_state."""
    try:
        logger.info("Starting background process run...")
        summary = service.process(full=full)
        run_state.complete(summary)
        logger.info("✓ Background process run completed")
    except Exception as e:
        logger.error(f"Background process run failed: {str(e)}\n{traceback.format_exc()}")
        run_state.fail(str(e))


@app.post("/process/run", response_model=ProcessRunResponse)
def start_process_run(full: bool = False, service: SimilarityService = Depends(get_service)):
    """Start a process() sweep in a background thread."""
    _require_ready(service)
    run_id = f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"
    if not run_state.try_start(run_id):
        raise HTTPException(status_code=409, detail="A process run is already in progress")

    worker = threading.Thread(target=_run_process_background, args=(service, full), daemon=True)
    worker.start()

    logger.info(f"Process run {run_id} started in background")
    return ProcessRunResponse(run_id=run_id, status="running", message="Processing dirty items...")
