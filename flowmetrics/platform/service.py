"""Platform-wide tunables and the MetricsConfig value threaded into computations."""

from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.config import settings
from flowmetrics.platform.models import PlatformSetting

logger = structlog.get_logger()

SEVERITY_THRESHOLDS_KEY = "cross_stream_severity_thresholds"
RETENTION_MONTHS_KEY = "data_retention_months"

CrossStreamSeverity = Literal["critical", "high", "medium", "low", "none"]


class SeverityThreshold(BaseModel):
    min_impacted_streams: int
    max_confidence: float
    severity: CrossStreamSeverity


# Evaluated top to bottom; first match wins.
DEFAULT_SEVERITY_THRESHOLDS: list[SeverityThreshold] = [
    SeverityThreshold(min_impacted_streams=3, max_confidence=60, severity="critical"),
    SeverityThreshold(min_impacted_streams=2, max_confidence=70, severity="high"),
    SeverityThreshold(min_impacted_streams=2, max_confidence=100, severity="medium"),
    SeverityThreshold(min_impacted_streams=1, max_confidence=70, severity="medium"),
    SeverityThreshold(min_impacted_streams=1, max_confidence=100, severity="low"),
]

DEFAULT_RETENTION_MONTHS: dict[str, int] = {
    "work_item_events": 24,
    "defect_events": 24,
    "pr_events": 24,
    "cicd_events": 24,
    "incident_events": 24,
    "deployment_records": 24,
    "pr_cycles": 24,
    "work_item_cycles": 36,
    "daily_stream_metrics": 36,
    "forecast_snapshots": 12,
    "event_queue": 3,
    # No survey table is stored yet; retention skips keys without a table.
    "survey_responses": 12,
}


class MetricsConfig(BaseModel):
    severity_thresholds: list[SeverityThreshold] = Field(
        default_factory=lambda: list(DEFAULT_SEVERITY_THRESHOLDS)
    )
    retention_months: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_RETENTION_MONTHS))
    min_reviewers: int = Field(default_factory=lambda: settings.DEFAULT_MIN_REVIEWERS)


async def get_setting(db: AsyncSession, key: str) -> Any | None:
    result = await db.execute(select(PlatformSetting).where(PlatformSetting.key == key))
    row = result.scalar_one_or_none()
    return row.value if row else None


async def put_setting(db: AsyncSession, key: str, value: Any, description: str | None = None) -> PlatformSetting:
    """Create or overwrite a platform setting."""
    result = await db.execute(select(PlatformSetting).where(PlatformSetting.key == key))
    row = result.scalar_one_or_none()
    if row:
        row.value = value
        if description is not None:
            row.description = description
    else:
        row = PlatformSetting(key=key, value=value, description=description)
        db.add(row)
    await db.commit()
    await db.refresh(row)
    return row


async def load_metrics_config(db: AsyncSession) -> MetricsConfig:
    """Build a MetricsConfig from stored settings, falling back to built-in defaults.

    A stored threshold table that fails validation is ignored rather than
    half-applied. Retention overrides merge over the defaults.
    """
    config = MetricsConfig()

    raw_thresholds = await get_setting(db, SEVERITY_THRESHOLDS_KEY)
    if isinstance(raw_thresholds, list) and raw_thresholds:
        try:
            config.severity_thresholds = [SeverityThreshold.model_validate(row) for row in raw_thresholds]
        except ValidationError:
            logger.warning("severity_thresholds_invalid", key=SEVERITY_THRESHOLDS_KEY)

    raw_retention = await get_setting(db, RETENTION_MONTHS_KEY)
    if isinstance(raw_retention, dict):
        for table, months in raw_retention.items():
            if isinstance(months, int) and months > 0:
                config.retention_months[table] = months

    return config
