import pytest

from flowmetrics.platform.service import (
    DEFAULT_RETENTION_MONTHS,
    DEFAULT_SEVERITY_THRESHOLDS,
    RETENTION_MONTHS_KEY,
    SEVERITY_THRESHOLDS_KEY,
    get_setting,
    load_metrics_config,
    put_setting,
)


@pytest.mark.asyncio
async def test_defaults_without_stored_settings(db):
    config = await load_metrics_config(db)

    assert config.severity_thresholds == DEFAULT_SEVERITY_THRESHOLDS
    assert config.retention_months == DEFAULT_RETENTION_MONTHS


@pytest.mark.asyncio
async def test_put_setting_overwrites(db):
    await put_setting(db, "feature", {"enabled": True}, description="toggle")
    row = await put_setting(db, "feature", {"enabled": False})

    assert row.description == "toggle"
    assert await get_setting(db, "feature") == {"enabled": False}
    assert await get_setting(db, "missing") is None


@pytest.mark.asyncio
async def test_stored_thresholds_replace_defaults(db):
    await put_setting(
        db,
        SEVERITY_THRESHOLDS_KEY,
        [{"min_impacted_streams": 1, "max_confidence": 100, "severity": "high"}],
    )

    config = await load_metrics_config(db)

    assert [(t.min_impacted_streams, t.severity) for t in config.severity_thresholds] == [(1, "high")]


@pytest.mark.asyncio
async def test_invalid_thresholds_are_ignored(db):
    await put_setting(db, SEVERITY_THRESHOLDS_KEY, [{"min_impacted_streams": 1, "severity": "apocalyptic"}])

    config = await load_metrics_config(db)

    assert config.severity_thresholds == DEFAULT_SEVERITY_THRESHOLDS


@pytest.mark.asyncio
async def test_retention_overrides_merge_over_defaults(db):
    await put_setting(db, RETENTION_MONTHS_KEY, {"event_queue": 1, "pr_events": -4, "cicd_events": "six"})

    config = await load_metrics_config(db)

    assert config.retention_months["event_queue"] == 1
    assert config.retention_months["pr_events"] == DEFAULT_RETENTION_MONTHS["pr_events"]
    assert config.retention_months["cicd_events"] == DEFAULT_RETENTION_MONTHS["cicd_events"]
    assert config.retention_months["work_item_events"] == DEFAULT_RETENTION_MONTHS["work_item_events"]


def test_default_retention_windows():
    assert DEFAULT_RETENTION_MONTHS["survey_responses"] == 12
    assert DEFAULT_RETENTION_MONTHS["event_queue"] == 3
    assert DEFAULT_RETENTION_MONTHS["work_item_cycles"] == 36
