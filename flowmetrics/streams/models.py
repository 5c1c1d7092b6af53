import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from flowmetrics.events.enums import PipelineStage
from flowmetrics.models.base import Base, TimestampMixin, enum_column_type, generate_uuid


class DeliveryStream(TimestampMixin, Base):
    """A product/value stream whose tickets flow through the Jira pipeline."""

    __tablename__ = "delivery_streams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class TechStream(TimestampMixin, Base):
    """An engineering team owning repositories (one GitHub App installation)."""

    __tablename__ = "tech_streams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    github_org: Mapped[str] = mapped_column(String(255), nullable=False)
    github_install_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    min_contributors: Mapped[int] = mapped_column(Integer, default=6)
    ticket_regex: Mapped[str | None] = mapped_column(String(255))


class Repository(TimestampMixin, Base):
    __tablename__ = "repositories"
    __table_args__ = (UniqueConstraint("github_org", "github_repo_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    tech_stream_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tech_streams.id"), nullable=False, index=True)
    github_org: Mapped[str] = mapped_column(String(255), nullable=False)
    github_repo_name: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(511), nullable=False, unique=True)
    default_branch: Mapped[str] = mapped_column(String(255), default="main")
    is_deployable: Mapped[bool] = mapped_column(Boolean, default=True)
    deploy_target: Mapped[str | None] = mapped_column(String(255), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class StatusMapping(TimestampMixin, Base):
    """Per-project Jira status name -> pipeline stage, with the active-work flag."""

    __tablename__ = "status_mappings"
    __table_args__ = (UniqueConstraint("jira_project_key", "jira_status_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    jira_project_key: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    jira_status_name: Mapped[str] = mapped_column(String(255), nullable=False)
    pipeline_stage: Mapped[PipelineStage] = mapped_column(enum_column_type(PipelineStage), nullable=False)
    is_active_work: Mapped[bool] = mapped_column(Boolean, default=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0)


class Sprint(TimestampMixin, Base):
    __tablename__ = "sprints"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    jira_sprint_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    delivery_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("delivery_streams.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    goal: Mapped[str | None] = mapped_column(Text)
    state: Mapped[str] = mapped_column(String(20), default="future")  # future, active, closed


class SprintSnapshot(Base):
    __tablename__ = "sprint_snapshots"
    __table_args__ = (UniqueConstraint("sprint_id", "snapshot_date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    sprint_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sprints.id"), nullable=False, index=True)
    delivery_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("delivery_streams.id"))
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    committed_count: Mapped[int] = mapped_column(Integer, default=0)
    completed_count: Mapped[int] = mapped_column(Integer, default=0)
    remaining_count: Mapped[int] = mapped_column(Integer, default=0)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PublicHoliday(TimestampMixin, Base):
    __tablename__ = "public_holidays"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
