import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from flowmetrics.models.base import Base, enum_column_type, generate_uuid


class StreamType(str, enum.Enum):
    DELIVERY = "delivery"
    TECH = "tech"


class DailyStreamMetric(Base):
    """One metric value per stream per day; ``percentile`` is None for non-percentile metrics.

    The unique constraint does not protect the None-percentile rows on
    databases where NULLs compare unequal, so the upsert checks both cases
    explicitly.
    """

    __tablename__ = "daily_stream_metrics"
    __table_args__ = (
        UniqueConstraint(
            "metric_date", "stream_type", "stream_id", "metric_name", "percentile", name="uq_daily_stream_metric"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    metric_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    stream_type: Mapped[StreamType] = mapped_column(enum_column_type(StreamType), nullable=False)
    stream_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)
    metric_value: Mapped[float] = mapped_column(Float, nullable=False)
    metric_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    percentile: Mapped[int | None] = mapped_column(Integer)
    sample_size: Mapped[int] = mapped_column(Integer, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
