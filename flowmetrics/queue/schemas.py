from pydantic import BaseModel


class EnqueueResponse(BaseModel):
    status: str = "accepted"
    queue_item_id: str


class QueueStats(BaseModel):
    pending: int
    dead_lettered: int


class DrainResponse(BaseModel):
    processed: int
    failed: int
    dead_lettered: int
