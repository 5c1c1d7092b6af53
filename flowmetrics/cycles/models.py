import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from flowmetrics.models.base import Base, TimestampMixin, generate_uuid


class WorkItemCycle(TimestampMixin, Base):
    """Derived lifecycle of one ticket; one row per ticket, overwritten on recompute."""

    __tablename__ = "work_item_cycles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    ticket_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    delivery_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("delivery_streams.id"), index=True)
    ticket_type: Mapped[str | None] = mapped_column(String(50))
    story_points: Mapped[float | None] = mapped_column(Float)
    sprint_id: Mapped[str | None] = mapped_column(String(64))
    created_at_source: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    first_in_progress: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    lead_time_days: Mapped[float] = mapped_column(Float, nullable=False)
    cycle_time_days: Mapped[float] = mapped_column(Float, nullable=False)
    active_time_days: Mapped[float] = mapped_column(Float, nullable=False)
    wait_time_days: Mapped[float] = mapped_column(Float, nullable=False)
    flow_efficiency_pct: Mapped[float] = mapped_column(Float, nullable=False)
    stage_durations: Mapped[dict] = mapped_column(JSON, default=dict)


class PrCycle(TimestampMixin, Base):
    """Derived lifecycle of one pull request; one row per (repo, PR number)."""

    __tablename__ = "pr_cycles"
    __table_args__ = (UniqueConstraint("repo_id", "pr_number", name="uq_pr_cycle"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    repo_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("repositories.id"), nullable=False)
    tech_stream_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tech_streams.id"), nullable=False, index=True)
    delivery_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("delivery_streams.id"), index=True)
    pr_number: Mapped[int] = mapped_column(Integer, nullable=False)
    linked_ticket_id: Mapped[str | None] = mapped_column(String(50), index=True)
    author_hash: Mapped[str | None] = mapped_column(String(64))
    merge_commit_sha: Mapped[str | None] = mapped_column(String(64), index=True)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    first_review_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    merged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    time_to_first_review_hrs: Mapped[float | None] = mapped_column(Float)
    time_to_merge_hrs: Mapped[float | None] = mapped_column(Float)
    review_rounds: Mapped[int] = mapped_column(Integer, default=0)
    reviewer_hashes: Mapped[list | None] = mapped_column(JSON)
    reviewer_count: Mapped[int] = mapped_column(Integer, default=0)
    reviewer_shares: Mapped[dict | None] = mapped_column(JSON)
    concentration_suppressed: Mapped[bool] = mapped_column(Boolean, default=False)
    lines_changed: Mapped[int | None] = mapped_column(Integer)
    files_changed: Mapped[int | None] = mapped_column(Integer)
