from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.database import get_db
from flowmetrics.queue.schemas import DrainResponse, QueueStats
from flowmetrics.queue.service import count_dead_lettered, count_pending, drain

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/stats", response_model=QueueStats)
async def queue_stats(db: AsyncSession = Depends(get_db)):
    """Backlog depth for the external health monitor."""
    return QueueStats(pending=await count_pending(db), dead_lettered=await count_dead_lettered(db))


@router.post("/drain", response_model=DrainResponse)
async def drain_queue(db: AsyncSession = Depends(get_db)):
    """Run one drain batch immediately instead of waiting for the scheduler."""
    result = await drain(db)
    return DrainResponse(processed=result.processed, failed=result.failed, dead_lettered=result.dead_lettered)
