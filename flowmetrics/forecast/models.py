import uuid
from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from flowmetrics.models.base import Base, TimestampMixin, generate_uuid


class ForecastSnapshot(TimestampMixin, Base):
    __tablename__ = "forecast_snapshots"
    __table_args__ = (UniqueConstraint("delivery_stream_id", "forecast_date", name="uq_forecast_snapshot"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    delivery_stream_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("delivery_streams.id"), nullable=False, index=True
    )
    forecast_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    scope_item_count: Mapped[int] = mapped_column(Integer, default=0)
    throughput_samples: Mapped[int] = mapped_column(Integer, default=0)
    simulation_runs: Mapped[int] = mapped_column(Integer, default=0)
    is_low_confidence: Mapped[bool] = mapped_column(Boolean, default=True)
    linear_projection_weeks: Mapped[float | None] = mapped_column(Float)
    p50_completion_date: Mapped[date | None] = mapped_column(Date)
    p70_completion_date: Mapped[date | None] = mapped_column(Date)
    p85_completion_date: Mapped[date | None] = mapped_column(Date)
    p95_completion_date: Mapped[date | None] = mapped_column(Date)
    distribution_data: Mapped[list | None] = mapped_column(JSON)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
