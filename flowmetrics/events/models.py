"""Canonical, append-only domain events produced by the normalizers.

Each table carries a unique constraint on its natural key; normalizers also
look the key up before inserting so that redelivered webhooks are no-ops.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from flowmetrics.events.enums import (
    CicdEventType,
    DefectEventType,
    DeploymentStatus,
    IncidentEventType,
    PipelineStage,
    PrEventType,
    Severity,
    WorkItemEventType,
)
from flowmetrics.models.base import Base, ReceivedAtMixin, enum_column_type, generate_uuid


class WorkItemEvent(ReceivedAtMixin, Base):
    __tablename__ = "work_item_events"
    __table_args__ = (UniqueConstraint("ticket_id", "event_type", "event_timestamp", name="uq_work_item_event"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    source: Mapped[str] = mapped_column(String(20), default="jira")
    delivery_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("delivery_streams.id"), index=True)
    tech_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("tech_streams.id"))
    ticket_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_type: Mapped[WorkItemEventType] = mapped_column(enum_column_type(WorkItemEventType), nullable=False)
    ticket_type: Mapped[str | None] = mapped_column(String(50))
    from_stage: Mapped[PipelineStage | None] = mapped_column(enum_column_type(PipelineStage))
    to_stage: Mapped[PipelineStage | None] = mapped_column(enum_column_type(PipelineStage))
    priority: Mapped[str | None] = mapped_column(String(50))
    story_points: Mapped[float | None] = mapped_column(Float)
    labels: Mapped[list | None] = mapped_column(JSON)
    sprint_id: Mapped[str | None] = mapped_column(String(64))
    blocked_reason: Mapped[str | None] = mapped_column(Text)
    blocking_tech_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("tech_streams.id"), index=True)
    assignee_hash: Mapped[str | None] = mapped_column(String(64))
    event_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class PrEvent(ReceivedAtMixin, Base):
    """One PR lifecycle or review event.

    ``delivery_stream_id`` is inherited from the linked ticket and is the only
    column written after creation, once that ticket has been seen.
    """

    __tablename__ = "pr_events"
    __table_args__ = (
        UniqueConstraint("repo_id", "pr_number", "event_type", "event_timestamp", name="uq_pr_event"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    tech_stream_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tech_streams.id"), nullable=False, index=True)
    delivery_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("delivery_streams.id"), index=True)
    repo_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("repositories.id"), nullable=False)
    github_org: Mapped[str] = mapped_column(String(255), nullable=False)
    github_repo: Mapped[str] = mapped_column(String(255), nullable=False)
    pr_number: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[PrEventType] = mapped_column(enum_column_type(PrEventType), nullable=False)
    author_hash: Mapped[str | None] = mapped_column(String(64))
    reviewer_hash: Mapped[str | None] = mapped_column(String(64))
    review_state: Mapped[str | None] = mapped_column(String(50))
    branch_name: Mapped[str | None] = mapped_column(String(255))
    base_branch: Mapped[str | None] = mapped_column(String(255))
    linked_ticket_id: Mapped[str | None] = mapped_column(String(50), index=True)
    lines_added: Mapped[int | None] = mapped_column(Integer)
    lines_removed: Mapped[int | None] = mapped_column(Integer)
    files_changed: Mapped[int | None] = mapped_column(Integer)
    merge_commit_sha: Mapped[str | None] = mapped_column(String(64))
    event_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class CicdEvent(ReceivedAtMixin, Base):
    __tablename__ = "cicd_events"
    __table_args__ = (UniqueConstraint("pipeline_id", "pipeline_run_id", "event_type", name="uq_cicd_event"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    tech_stream_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tech_streams.id"), nullable=False, index=True)
    repo_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("repositories.id"))
    event_type: Mapped[CicdEventType] = mapped_column(enum_column_type(CicdEventType), nullable=False)
    pipeline_id: Mapped[str] = mapped_column(String(255), nullable=False)
    pipeline_run_id: Mapped[str] = mapped_column(String(255), nullable=False)
    environment: Mapped[str | None] = mapped_column(String(50))
    status: Mapped[str | None] = mapped_column(String(50))
    commit_sha: Mapped[str | None] = mapped_column(String(64))
    duration_sec: Mapped[float | None] = mapped_column(Float)
    event_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class DeploymentRecord(ReceivedAtMixin, Base):
    """One deployment of one commit into one environment.

    ``caused_incident`` and ``incident_id`` are the only columns written after
    creation, by deploy/incident correlation.
    """

    __tablename__ = "deployment_records"
    __table_args__ = (
        UniqueConstraint("tech_stream_id", "environment", "commit_sha", "deployed_at", name="uq_deployment_record"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    tech_stream_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tech_streams.id"), nullable=False, index=True)
    repo_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("repositories.id"), nullable=False)
    environment: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[DeploymentStatus] = mapped_column(enum_column_type(DeploymentStatus), nullable=False)
    commit_sha: Mapped[str] = mapped_column(String(64), nullable=False)
    pipeline_id: Mapped[str | None] = mapped_column(String(255))
    trigger_type: Mapped[str | None] = mapped_column(String(50))
    linked_pr_number: Mapped[int | None] = mapped_column(Integer)
    linked_ticket_id: Mapped[str | None] = mapped_column(String(50))
    lead_time_hrs: Mapped[float | None] = mapped_column(Float)
    caused_incident: Mapped[bool] = mapped_column(Boolean, default=False)
    incident_id: Mapped[str | None] = mapped_column(String(255))
    deployed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class IncidentEvent(ReceivedAtMixin, Base):
    __tablename__ = "incident_events"
    __table_args__ = (UniqueConstraint("incident_id", "event_type", name="uq_incident_event"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    incident_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    event_type: Mapped[IncidentEventType] = mapped_column(enum_column_type(IncidentEventType), nullable=False)
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    severity: Mapped[str | None] = mapped_column(String(20))
    tech_stream_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tech_streams.id"), nullable=False, index=True)
    related_deploy_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("deployment_records.id"))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    time_to_restore_min: Mapped[float | None] = mapped_column(Float)


class DefectEvent(ReceivedAtMixin, Base):
    __tablename__ = "defect_events"
    __table_args__ = (UniqueConstraint("ticket_id", "event_type", "event_timestamp", name="uq_defect_event"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    ticket_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_type: Mapped[DefectEventType] = mapped_column(enum_column_type(DefectEventType), nullable=False)
    severity: Mapped[Severity | None] = mapped_column(enum_column_type(Severity))
    found_in_stage: Mapped[str | None] = mapped_column(String(50))
    introduced_in_stage: Mapped[str | None] = mapped_column(String(50))
    delivery_stream_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("delivery_streams.id"), index=True)
    event_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
