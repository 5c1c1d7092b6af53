"""Closed vocabularies for canonical events and configuration."""

from enum import Enum


class PipelineStage(str, Enum):
    BACKLOG = "backlog"
    BA = "ba"
    DEV = "dev"
    CODE_REVIEW = "code_review"
    QA = "qa"
    UAT = "uat"
    DONE = "done"
    CANCELLED = "cancelled"


# Stages a ticket can still be worked in; forecast scope and WIP count these.
OPEN_STAGES: frozenset[PipelineStage] = frozenset({
    PipelineStage.BACKLOG,
    PipelineStage.BA,
    PipelineStage.DEV,
    PipelineStage.CODE_REVIEW,
    PipelineStage.QA,
    PipelineStage.UAT,
})


class WorkItemEventType(str, Enum):
    CREATED = "created"
    TRANSITIONED = "transitioned"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"


# Work-item events after which the ticket's cycle is recomputed.
CYCLE_TRIGGERING_EVENTS: frozenset[WorkItemEventType] = frozenset({
    WorkItemEventType.CREATED,
    WorkItemEventType.TRANSITIONED,
    WorkItemEventType.COMPLETED,
})


class PrEventType(str, Enum):
    OPENED = "opened"
    REVIEW_SUBMITTED = "review_submitted"
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"
    MERGED = "merged"
    CLOSED = "closed"


REVIEW_EVENT_TYPES: frozenset[PrEventType] = frozenset({
    PrEventType.REVIEW_SUBMITTED,
    PrEventType.CHANGES_REQUESTED,
    PrEventType.APPROVED,
})


class CicdEventType(str, Enum):
    BUILD_COMPLETED = "build_completed"
    DEPLOY_COMPLETED = "deploy_completed"
    DEPLOY_FAILED = "deploy_failed"


class DeploymentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    CANCELLED = "cancelled"


class IncidentEventType(str, Enum):
    ALARM_TRIGGERED = "alarm_triggered"
    ALARM_RESOLVED = "alarm_resolved"
    INCIDENT_OPENED = "incident_opened"
    INCIDENT_RESOLVED = "incident_resolved"


INCIDENT_TRIGGER_TYPES: frozenset[IncidentEventType] = frozenset({
    IncidentEventType.ALARM_TRIGGERED,
    IncidentEventType.INCIDENT_OPENED,
})
INCIDENT_RESOLVED_TYPES: frozenset[IncidentEventType] = frozenset({
    IncidentEventType.ALARM_RESOLVED,
    IncidentEventType.INCIDENT_RESOLVED,
})


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DefectEventType(str, Enum):
    LOGGED = "logged"
    RECLASSIFIED = "reclassified"


# Defects found in these stages escaped the team's own quality gates.
ESCAPE_STAGES: frozenset[str] = frozenset({"uat", "production"})
