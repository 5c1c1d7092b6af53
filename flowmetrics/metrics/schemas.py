import uuid
from datetime import date

from pydantic import BaseModel


class PercentileSummary(BaseModel):
    count: int
    p50: float
    p85: float
    p95: float


class FlowEfficiencyResult(BaseModel):
    count: int
    avg_flow_efficiency_pct: float | None
    avg_stage_durations: dict[str, float]


class WipResult(BaseModel):
    by_stage: dict[str, int]
    total: int


class DoraMetrics(BaseModel):
    window_days: int
    deployment_count: int
    deployment_frequency: float
    change_failure_rate: float
    ttr_median_min: float
    ttr_mean_min: float
    ttr_sample_size: int
    lead_time_p50_hrs: float | None
    lead_time_p85_hrs: float | None
    lead_time_sample_size: int


class DoraTrendPoint(BaseModel):
    week_start: date
    deployment_count: int
    change_failure_rate: float
    ttr_median_min: float
    lead_time_p50_hrs: float | None
    lead_time_p85_hrs: float | None


class StagePairCount(BaseModel):
    introduced_in: str
    found_in: str
    count: int


class DefectEscapeResult(BaseModel):
    count: int
    escape_rate_pct: float
    unattributed_count: int
    unattributed_pct: float
    stage_pair_matrix: list[StagePairCount]


class ReviewerConcentration(BaseModel):
    reviewer_hash: str
    review_count: int
    percentage: float
    is_concerning: bool


class ReviewHealthResult(BaseModel):
    pr_count: int
    p50: float
    p85: float
    distinct_contributors: int
    is_suppressed: bool
    reviewer_concentration: list[ReviewerConcentration]
    pr_to_ticket_linkage_rate: float


class SprintConfidenceResult(BaseModel):
    confidence: float
    sprint_id: uuid.UUID | None = None
    sprint_name: str | None = None
    remaining_count: int = 0
    working_days_remaining: int = 0
    has_insufficient_data: bool = True


class CrossStreamResult(BaseModel):
    model_config = {"from_attributes": True}

    tech_stream_id: uuid.UUID
    block_count_14d: int
    impacted_delivery_stream_ids: list[uuid.UUID]
    avg_confidence_pct: float | None
    severity: str


class DataQualityWarning(BaseModel):
    metric: str
    rate: float
    target: float


class DataQualityResult(BaseModel):
    window_days: int
    pr_linkage_rate: float
    pr_total: int
    ticket_tagging_rate: float
    ticket_total: int
    deployment_traceability_rate: float
    deployment_total: int
    warnings: list[DataQualityWarning]
