from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.database import get_db
from flowmetrics.forecast.monte_carlo import ForecastResult
from flowmetrics.forecast.service import compute_forecast
from flowmetrics.metrics.cross_stream import compute_cross_stream
from flowmetrics.metrics.cycle_time import compute_cycle_time, compute_lead_time
from flowmetrics.metrics.data_quality import compute_data_quality
from flowmetrics.metrics.defect_escape import compute_defect_escape
from flowmetrics.metrics.dora import compute_dora, compute_dora_trend
from flowmetrics.metrics.flow_efficiency import compute_flow_efficiency
from flowmetrics.metrics.review_health import compute_review_health
from flowmetrics.metrics.schemas import (
    CrossStreamResult,
    DataQualityResult,
    DefectEscapeResult,
    DoraMetrics,
    DoraTrendPoint,
    FlowEfficiencyResult,
    PercentileSummary,
    ReviewHealthResult,
    SprintConfidenceResult,
    WipResult,
)
from flowmetrics.metrics.sprint_confidence import compute_sprint_confidence
from flowmetrics.metrics.wip import compute_wip
from flowmetrics.platform.service import load_metrics_config
from flowmetrics.streams.models import DeliveryStream, TechStream

router = APIRouter(prefix="/metrics", tags=["metrics"])


async def _delivery_stream(stream_id: UUID, db: AsyncSession = Depends(get_db)) -> DeliveryStream:
    stream = await db.get(DeliveryStream, stream_id)
    if stream is None:
        raise HTTPException(status_code=404, detail="Delivery stream not found")
    return stream


async def _tech_stream(stream_id: UUID, db: AsyncSession = Depends(get_db)) -> TechStream:
    stream = await db.get(TechStream, stream_id)
    if stream is None:
        raise HTTPException(status_code=404, detail="Tech stream not found")
    return stream


@router.get("/delivery-streams/{stream_id}/cycle-time", response_model=PercentileSummary)
async def cycle_time(
    window_days: int = Query(30, ge=1, le=365),
    stream: DeliveryStream = Depends(_delivery_stream),
    db: AsyncSession = Depends(get_db),
):
    return await compute_cycle_time(db, stream.id, window_days)


@router.get("/delivery-streams/{stream_id}/lead-time", response_model=PercentileSummary)
async def lead_time(
    window_days: int = Query(30, ge=1, le=365),
    stream: DeliveryStream = Depends(_delivery_stream),
    db: AsyncSession = Depends(get_db),
):
    return await compute_lead_time(db, stream.id, window_days)


@router.get("/delivery-streams/{stream_id}/flow-efficiency", response_model=FlowEfficiencyResult)
async def flow_efficiency(
    window_days: int = Query(30, ge=1, le=365),
    stream: DeliveryStream = Depends(_delivery_stream),
    db: AsyncSession = Depends(get_db),
):
    return await compute_flow_efficiency(db, stream.id, window_days)


@router.get("/delivery-streams/{stream_id}/wip", response_model=WipResult)
async def wip(stream: DeliveryStream = Depends(_delivery_stream), db: AsyncSession = Depends(get_db)):
    return await compute_wip(db, stream.id)


@router.get("/delivery-streams/{stream_id}/defect-escape", response_model=DefectEscapeResult)
async def defect_escape(
    window_days: int = Query(30, ge=1, le=365),
    stream: DeliveryStream = Depends(_delivery_stream),
    db: AsyncSession = Depends(get_db),
):
    return await compute_defect_escape(db, stream.id, window_days)


@router.get("/delivery-streams/{stream_id}/sprint-confidence", response_model=SprintConfidenceResult)
async def sprint_confidence(stream: DeliveryStream = Depends(_delivery_stream), db: AsyncSession = Depends(get_db)):
    return await compute_sprint_confidence(db, stream.id)


@router.get("/delivery-streams/{stream_id}/forecast", response_model=ForecastResult)
async def forecast(stream: DeliveryStream = Depends(_delivery_stream), db: AsyncSession = Depends(get_db)):
    return await compute_forecast(db, stream.id)


@router.get("/tech-streams/{stream_id}/dora", response_model=DoraMetrics)
async def dora(
    window_days: int = Query(30, ge=1, le=365),
    stream: TechStream = Depends(_tech_stream),
    db: AsyncSession = Depends(get_db),
):
    return await compute_dora(db, stream.id, window_days)


@router.get("/tech-streams/{stream_id}/dora-trend", response_model=list[DoraTrendPoint])
async def dora_trend(stream: TechStream = Depends(_tech_stream), db: AsyncSession = Depends(get_db)):
    return await compute_dora_trend(db, stream.id)


@router.get("/tech-streams/{stream_id}/review-health", response_model=ReviewHealthResult)
async def review_health(
    window_days: int = Query(30, ge=1, le=365),
    stream: TechStream = Depends(_tech_stream),
    db: AsyncSession = Depends(get_db),
):
    return await compute_review_health(db, stream.id, window_days, config=await load_metrics_config(db))


@router.get("/tech-streams/{stream_id}/cross-stream", response_model=CrossStreamResult)
async def cross_stream(stream: TechStream = Depends(_tech_stream), db: AsyncSession = Depends(get_db)):
    return await compute_cross_stream(db, stream.id, config=await load_metrics_config(db))


@router.get("/data-quality", response_model=DataQualityResult)
async def data_quality(window_days: int = Query(30, ge=1, le=365), db: AsyncSession = Depends(get_db)):
    return await compute_data_quality(db, window_days)
