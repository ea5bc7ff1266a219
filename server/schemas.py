from typing import Optional
from pydantic import BaseModel, Field

class Neighbor(BaseModel):
    item_id: str
    similarity: float

class NeighborsResponse(BaseModel):
    item_id: str
    neighbors: list[Neighbor]

class InteractionSetRequest(BaseModel):
    """
    One interaction set from a client.

    matrix: name of the configured input matrix ("orders", "likes", ...)
    bucket_id: the grouping the items share (order id, user id, session id)
    items: item ids; repeats are collapsed before counting
    """
    matrix: str
    bucket_id: str
    items: list[str] = Field(..., min_length=1)

class InteractionSetResponse(BaseModel):
    status: str
    distinct_items: list[str]

class ProcessResponse(BaseModel):
    processed: list[str]
    skipped: list[str]
    failed: list[str]

class ItemStateResponse(BaseModel):
    item_id: str
    state: str

class RemoveItemResponse(BaseModel):
    """
    Result of removing an item.

    affected: items whose neighbor lists lost the removed item; they are dirty until the next sweep
    """
    status: str
    item_id: str
    affected: list[str]

class ItemsResponse(BaseModel):
    items: list[str]
    count: int

class ProcessRunResponse(BaseModel):
    run_id: str
    status: str
    message: Optional[str] = None
