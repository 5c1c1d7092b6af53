"""initial schema

Revision ID: 3f9c1e7a2b40
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '3f9c1e7a2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def _received_at() -> sa.Column:
    return sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True)


def upgrade() -> None:
    op.create_table(
        'delivery_streams',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'tech_streams',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('github_org', sa.String(255), nullable=False),
        sa.Column('github_install_id', sa.String(64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('min_contributors', sa.Integer(), nullable=True),
        sa.Column('ticket_regex', sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_tech_streams_github_install_id', 'tech_streams', ['github_install_id'], unique=True)

    op.create_table(
        'repositories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tech_stream_id', sa.Uuid(), nullable=False),
        sa.Column('github_org', sa.String(255), nullable=False),
        sa.Column('github_repo_name', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(511), nullable=False),
        sa.Column('default_branch', sa.String(255), nullable=True),
        sa.Column('is_deployable', sa.Boolean(), nullable=True),
        sa.Column('deploy_target', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tech_stream_id'], ['tech_streams.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('full_name'),
        sa.UniqueConstraint('github_org', 'github_repo_name'),
    )
    op.create_index('ix_repositories_tech_stream_id', 'repositories', ['tech_stream_id'])
    op.create_index('ix_repositories_deploy_target', 'repositories', ['deploy_target'])

    op.create_table(
        'status_mappings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('jira_project_key', sa.String(50), nullable=False),
        sa.Column('jira_status_name', sa.String(255), nullable=False),
        sa.Column('pipeline_stage', sa.String(32), nullable=False),
        sa.Column('is_active_work', sa.Boolean(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('jira_project_key', 'jira_status_name'),
    )
    op.create_index('ix_status_mappings_jira_project_key', 'status_mappings', ['jira_project_key'])

    op.create_table(
        'sprints',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('jira_sprint_id', sa.String(64), nullable=False),
        sa.Column('delivery_stream_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('goal', sa.Text(), nullable=True),
        sa.Column('state', sa.String(20), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['delivery_stream_id'], ['delivery_streams.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sprints_jira_sprint_id', 'sprints', ['jira_sprint_id'], unique=True)
    op.create_index('ix_sprints_delivery_stream_id', 'sprints', ['delivery_stream_id'])

    op.create_table(
        'sprint_snapshots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sprint_id', sa.Uuid(), nullable=False),
        sa.Column('delivery_stream_id', sa.Uuid(), nullable=True),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('committed_count', sa.Integer(), nullable=True),
        sa.Column('completed_count', sa.Integer(), nullable=True),
        sa.Column('remaining_count', sa.Integer(), nullable=True),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['sprint_id'], ['sprints.id']),
        sa.ForeignKeyConstraint(['delivery_stream_id'], ['delivery_streams.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sprint_id', 'snapshot_date'),
    )
    op.create_index('ix_sprint_snapshots_sprint_id', 'sprint_snapshots', ['sprint_id'])

    op.create_table(
        'public_holidays',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('date'),
    )

    op.create_table(
        'platform_settings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_platform_settings_key', 'platform_settings', ['key'], unique=True)

    op.create_table(
        'event_queue',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('event_source', sa.String(32), nullable=False),
        sa.Column('event_kind', sa.String(100), nullable=True),
        sa.Column('signature', sa.String(255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('enqueued_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_event_queue_status', 'event_queue', ['status'])
    op.create_index('ix_event_queue_enqueued_at', 'event_queue', ['enqueued_at'])

    op.create_table(
        'work_item_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('source', sa.String(20), nullable=True),
        sa.Column('delivery_stream_id', sa.Uuid(), nullable=True),
        sa.Column('tech_stream_id', sa.Uuid(), nullable=True),
        sa.Column('ticket_id', sa.String(50), nullable=False),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('ticket_type', sa.String(50), nullable=True),
        sa.Column('from_stage', sa.String(32), nullable=True),
        sa.Column('to_stage', sa.String(32), nullable=True),
        sa.Column('priority', sa.String(50), nullable=True),
        sa.Column('story_points', sa.Float(), nullable=True),
        sa.Column('labels', sa.JSON(), nullable=True),
        sa.Column('sprint_id', sa.String(64), nullable=True),
        sa.Column('blocked_reason', sa.Text(), nullable=True),
        sa.Column('blocking_tech_stream_id', sa.Uuid(), nullable=True),
        sa.Column('assignee_hash', sa.String(64), nullable=True),
        sa.Column('event_timestamp', sa.DateTime(timezone=True), nullable=False),
        _received_at(),
        sa.ForeignKeyConstraint(['delivery_stream_id'], ['delivery_streams.id']),
        sa.ForeignKeyConstraint(['tech_stream_id'], ['tech_streams.id']),
        sa.ForeignKeyConstraint(['blocking_tech_stream_id'], ['tech_streams.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticket_id', 'event_type', 'event_timestamp', name='uq_work_item_event'),
    )
    op.create_index('ix_work_item_events_ticket_id', 'work_item_events', ['ticket_id'])
    op.create_index('ix_work_item_events_delivery_stream_id', 'work_item_events', ['delivery_stream_id'])
    op.create_index('ix_work_item_events_blocking_tech_stream_id', 'work_item_events', ['blocking_tech_stream_id'])
    op.create_index('ix_work_item_events_event_timestamp', 'work_item_events', ['event_timestamp'])

    op.create_table(
        'pr_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tech_stream_id', sa.Uuid(), nullable=False),
        sa.Column('repo_id', sa.Uuid(), nullable=False),
        sa.Column('github_org', sa.String(255), nullable=False),
        sa.Column('github_repo', sa.String(255), nullable=False),
        sa.Column('pr_number', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('author_hash', sa.String(64), nullable=True),
        sa.Column('reviewer_hash', sa.String(64), nullable=True),
        sa.Column('review_state', sa.String(50), nullable=True),
        sa.Column('branch_name', sa.String(255), nullable=True),
        sa.Column('base_branch', sa.String(255), nullable=True),
        sa.Column('linked_ticket_id', sa.String(50), nullable=True),
        sa.Column('lines_added', sa.Integer(), nullable=True),
        sa.Column('lines_removed', sa.Integer(), nullable=True),
        sa.Column('files_changed', sa.Integer(), nullable=True),
        sa.Column('merge_commit_sha', sa.String(64), nullable=True),
        sa.Column('event_timestamp', sa.DateTime(timezone=True), nullable=False),
        _received_at(),
        sa.ForeignKeyConstraint(['tech_stream_id'], ['tech_streams.id']),
        sa.ForeignKeyConstraint(['repo_id'], ['repositories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repo_id', 'pr_number', 'event_type', 'event_timestamp', name='uq_pr_event'),
    )
    op.create_index('ix_pr_events_tech_stream_id', 'pr_events', ['tech_stream_id'])
    op.create_index('ix_pr_events_linked_ticket_id', 'pr_events', ['linked_ticket_id'])
    op.create_index('ix_pr_events_event_timestamp', 'pr_events', ['event_timestamp'])

    op.create_table(
        'cicd_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tech_stream_id', sa.Uuid(), nullable=False),
        sa.Column('repo_id', sa.Uuid(), nullable=True),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('pipeline_id', sa.String(255), nullable=False),
        sa.Column('pipeline_run_id', sa.String(255), nullable=False),
        sa.Column('environment', sa.String(50), nullable=True),
        sa.Column('status', sa.String(50), nullable=True),
        sa.Column('commit_sha', sa.String(64), nullable=True),
        sa.Column('duration_sec', sa.Float(), nullable=True),
        sa.Column('event_timestamp', sa.DateTime(timezone=True), nullable=False),
        _received_at(),
        sa.ForeignKeyConstraint(['tech_stream_id'], ['tech_streams.id']),
        sa.ForeignKeyConstraint(['repo_id'], ['repositories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('pipeline_id', 'pipeline_run_id', 'event_type', name='uq_cicd_event'),
    )
    op.create_index('ix_cicd_events_tech_stream_id', 'cicd_events', ['tech_stream_id'])
    op.create_index('ix_cicd_events_event_timestamp', 'cicd_events', ['event_timestamp'])

    op.create_table(
        'deployment_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tech_stream_id', sa.Uuid(), nullable=False),
        sa.Column('repo_id', sa.Uuid(), nullable=False),
        sa.Column('environment', sa.String(50), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('commit_sha', sa.String(64), nullable=False),
        sa.Column('pipeline_id', sa.String(255), nullable=True),
        sa.Column('trigger_type', sa.String(50), nullable=True),
        sa.Column('linked_pr_number', sa.Integer(), nullable=True),
        sa.Column('linked_ticket_id', sa.String(50), nullable=True),
        sa.Column('lead_time_hrs', sa.Float(), nullable=True),
        sa.Column('caused_incident', sa.Boolean(), nullable=True),
        sa.Column('incident_id', sa.String(255), nullable=True),
        sa.Column('deployed_at', sa.DateTime(timezone=True), nullable=False),
        _received_at(),
        sa.ForeignKeyConstraint(['tech_stream_id'], ['tech_streams.id']),
        sa.ForeignKeyConstraint(['repo_id'], ['repositories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tech_stream_id', 'environment', 'commit_sha', 'deployed_at', name='uq_deployment_record'
        ),
    )
    op.create_index('ix_deployment_records_tech_stream_id', 'deployment_records', ['tech_stream_id'])
    op.create_index('ix_deployment_records_deployed_at', 'deployment_records', ['deployed_at'])

    op.create_table(
        'incident_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('incident_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('service_name', sa.String(255), nullable=False),
        sa.Column('severity', sa.String(20), nullable=True),
        sa.Column('tech_stream_id', sa.Uuid(), nullable=False),
        sa.Column('related_deploy_id', sa.Uuid(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_to_restore_min', sa.Float(), nullable=True),
        _received_at(),
        sa.ForeignKeyConstraint(['tech_stream_id'], ['tech_streams.id']),
        sa.ForeignKeyConstraint(['related_deploy_id'], ['deployment_records.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('incident_id', 'event_type', name='uq_incident_event'),
    )
    op.create_index('ix_incident_events_incident_id', 'incident_events', ['incident_id'])
    op.create_index('ix_incident_events_tech_stream_id', 'incident_events', ['tech_stream_id'])
    op.create_index('ix_incident_events_occurred_at', 'incident_events', ['occurred_at'])

    op.create_table(
        'defect_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.String(50), nullable=False),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('severity', sa.String(32), nullable=True),
        sa.Column('found_in_stage', sa.String(50), nullable=True),
        sa.Column('introduced_in_stage', sa.String(50), nullable=True),
        sa.Column('delivery_stream_id', sa.Uuid(), nullable=True),
        sa.Column('event_timestamp', sa.DateTime(timezone=True), nullable=False),
        _received_at(),
        sa.ForeignKeyConstraint(['delivery_stream_id'], ['delivery_streams.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticket_id', 'event_type', 'event_timestamp', name='uq_defect_event'),
    )
    op.create_index('ix_defect_events_ticket_id', 'defect_events', ['ticket_id'])
    op.create_index('ix_defect_events_delivery_stream_id', 'defect_events', ['delivery_stream_id'])
    op.create_index('ix_defect_events_event_timestamp', 'defect_events', ['event_timestamp'])

    op.create_table(
        'work_item_cycles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.String(50), nullable=False),
        sa.Column('delivery_stream_id', sa.Uuid(), nullable=True),
        sa.Column('ticket_type', sa.String(50), nullable=True),
        sa.Column('story_points', sa.Float(), nullable=True),
        sa.Column('sprint_id', sa.String(64), nullable=True),
        sa.Column('created_at_source', sa.DateTime(timezone=True), nullable=False),
        sa.Column('first_in_progress', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('lead_time_days', sa.Float(), nullable=False),
        sa.Column('cycle_time_days', sa.Float(), nullable=False),
        sa.Column('active_time_days', sa.Float(), nullable=False),
        sa.Column('wait_time_days', sa.Float(), nullable=False),
        sa.Column('flow_efficiency_pct', sa.Float(), nullable=False),
        sa.Column('stage_durations', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['delivery_stream_id'], ['delivery_streams.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_work_item_cycles_ticket_id', 'work_item_cycles', ['ticket_id'], unique=True)
    op.create_index('ix_work_item_cycles_delivery_stream_id', 'work_item_cycles', ['delivery_stream_id'])
    op.create_index('ix_work_item_cycles_completed_at', 'work_item_cycles', ['completed_at'])

    op.create_table(
        'pr_cycles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('repo_id', sa.Uuid(), nullable=False),
        sa.Column('tech_stream_id', sa.Uuid(), nullable=False),
        sa.Column('pr_number', sa.Integer(), nullable=False),
        sa.Column('linked_ticket_id', sa.String(50), nullable=True),
        sa.Column('author_hash', sa.String(64), nullable=True),
        sa.Column('merge_commit_sha', sa.String(64), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('first_review_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('merged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_to_first_review_hrs', sa.Float(), nullable=True),
        sa.Column('time_to_merge_hrs', sa.Float(), nullable=True),
        sa.Column('review_rounds', sa.Integer(), nullable=True),
        sa.Column('reviewer_hashes', sa.JSON(), nullable=True),
        sa.Column('reviewer_count', sa.Integer(), nullable=True),
        sa.Column('reviewer_shares', sa.JSON(), nullable=True),
        sa.Column('concentration_suppressed', sa.Boolean(), nullable=True),
        sa.Column('lines_changed', sa.Integer(), nullable=True),
        sa.Column('files_changed', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['repo_id'], ['repositories.id']),
        sa.ForeignKeyConstraint(['tech_stream_id'], ['tech_streams.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repo_id', 'pr_number', name='uq_pr_cycle'),
    )
    op.create_index('ix_pr_cycles_tech_stream_id', 'pr_cycles', ['tech_stream_id'])
    op.create_index('ix_pr_cycles_linked_ticket_id', 'pr_cycles', ['linked_ticket_id'])
    op.create_index('ix_pr_cycles_merge_commit_sha', 'pr_cycles', ['merge_commit_sha'])
    op.create_index('ix_pr_cycles_merged_at', 'pr_cycles', ['merged_at'])

    op.create_table(
        'cross_stream_correlations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tech_stream_id', sa.Uuid(), nullable=False),
        sa.Column('analysis_date', sa.Date(), nullable=False),
        sa.Column('impacted_delivery_streams', sa.JSON(), nullable=True),
        sa.Column('block_count_14d', sa.Integer(), nullable=True),
        sa.Column('avg_confidence_pct', sa.Float(), nullable=True),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tech_stream_id'], ['tech_streams.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tech_stream_id', 'analysis_date', name='uq_cross_stream_correlation'),
    )
    op.create_index('ix_cross_stream_correlations_tech_stream_id', 'cross_stream_correlations', ['tech_stream_id'])
    op.create_index('ix_cross_stream_correlations_analysis_date', 'cross_stream_correlations', ['analysis_date'])

    op.create_table(
        'forecast_snapshots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('delivery_stream_id', sa.Uuid(), nullable=False),
        sa.Column('forecast_date', sa.Date(), nullable=False),
        sa.Column('scope_item_count', sa.Integer(), nullable=True),
        sa.Column('throughput_samples', sa.Integer(), nullable=True),
        sa.Column('simulation_runs', sa.Integer(), nullable=True),
        sa.Column('is_low_confidence', sa.Boolean(), nullable=True),
        sa.Column('linear_projection_weeks', sa.Float(), nullable=True),
        sa.Column('p50_completion_date', sa.Date(), nullable=True),
        sa.Column('p70_completion_date', sa.Date(), nullable=True),
        sa.Column('p85_completion_date', sa.Date(), nullable=True),
        sa.Column('p95_completion_date', sa.Date(), nullable=True),
        sa.Column('distribution_data', sa.JSON(), nullable=True),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['delivery_stream_id'], ['delivery_streams.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('delivery_stream_id', 'forecast_date', name='uq_forecast_snapshot'),
    )
    op.create_index('ix_forecast_snapshots_delivery_stream_id', 'forecast_snapshots', ['delivery_stream_id'])
    op.create_index('ix_forecast_snapshots_forecast_date', 'forecast_snapshots', ['forecast_date'])

    op.create_table(
        'daily_stream_metrics',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('metric_date', sa.Date(), nullable=False),
        sa.Column('stream_type', sa.String(32), nullable=False),
        sa.Column('stream_id', sa.Uuid(), nullable=False),
        sa.Column('metric_name', sa.String(100), nullable=False),
        sa.Column('metric_value', sa.Float(), nullable=False),
        sa.Column('metric_unit', sa.String(20), nullable=False),
        sa.Column('percentile', sa.Integer(), nullable=True),
        sa.Column('sample_size', sa.Integer(), nullable=False),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'metric_date', 'stream_type', 'stream_id', 'metric_name', 'percentile', name='uq_daily_stream_metric'
        ),
    )
    op.create_index('ix_daily_stream_metrics_metric_date', 'daily_stream_metrics', ['metric_date'])
    op.create_index('ix_daily_stream_metrics_stream_id', 'daily_stream_metrics', ['stream_id'])


def downgrade() -> None:
    for table in (
        'daily_stream_metrics',
        'forecast_snapshots',
        'cross_stream_correlations',
        'pr_cycles',
        'work_item_cycles',
        'defect_events',
        'incident_events',
        'deployment_records',
        'cicd_events',
        'pr_events',
        'work_item_events',
        'event_queue',
        'platform_settings',
        'public_holidays',
        'sprint_snapshots',
        'sprints',
        'status_mappings',
        'repositories',
        'tech_streams',
        'delivery_streams',
    ):
        op.drop_table(table)
