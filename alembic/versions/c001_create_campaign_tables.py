"""Create campaign rollout tables

Revision ID: c001_create_campaign_tables
Revises:
Create Date: 2026-10-17

This migration creates the tables of the rollout engine:
- campaigns: Campaign content, status, rollout and reminder configuration
- campaign_waves: Time-phased slices of a staggered rollout
- campaign_assignments: One row per (campaign, recipient) with a snapshot
- org_blackout_dates: Windows during which nothing may launch
- employee_compliance_profiles: Cross-campaign response history

The directory tables (employees, campaign_segments) belong to the
directory service and are not created here.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'c001_create_campaign_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'campaigns',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),

        # Content
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status_note', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT'),

        # Targeting
        sa.Column('audience_mode', sa.String(20), nullable=False, server_default='ALL'),
        sa.Column('segment_id', sa.String(), nullable=True),  # No FK - segments live in the directory database
        sa.Column('manual_ids', sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('targeting_criteria', sa.JSON(), nullable=True),

        # Schedule
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('launch_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('launched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('launched_by_id', sa.String(), nullable=True),

        # Rollout and reminders
        sa.Column('rollout_strategy', sa.String(20), nullable=False, server_default='IMMEDIATE'),
        sa.Column('rollout_config', sa.JSON(), nullable=True),
        sa.Column('reminder_config', sa.JSON(), nullable=True),

        # Counters
        sa.Column('total_assignments', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_assignments', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('overdue_assignments', sa.Integer(), nullable=False, server_default='0'),

        # Translation lineage
        sa.Column('parent_campaign_id', sa.String(), sa.ForeignKey('campaigns.id'), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('language', sa.String(10), nullable=False, server_default='en'),
        sa.Column('parent_version', sa.Integer(), nullable=True),

        # Audit
        sa.Column('created_by_id', sa.String(), nullable=True),
        sa.Column('updated_by_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_check_constraint(
        'check_campaign_status',
        'campaigns',
        "status IN ('DRAFT', 'SCHEDULED', 'ACTIVE', 'PAUSED', 'COMPLETED', 'CANCELLED')"
    )
    op.create_index('ix_campaigns_organization_id', 'campaigns', ['organization_id'])
    op.create_index('ix_campaigns_parent_campaign_id', 'campaigns', ['parent_campaign_id'])

    op.create_table(
        'campaign_waves',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('wave_number', sa.Integer(), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('audience_percentage', sa.Float(), nullable=True),
        sa.Column('recipient_ids', sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('launched_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('campaign_id', 'wave_number', name='uq_campaign_wave_number'),
    )
    op.create_check_constraint(
        'check_wave_status',
        'campaign_waves',
        "status IN ('PENDING', 'LAUNCHED', 'CANCELLED')"
    )
    op.create_index('ix_campaign_waves_organization_id', 'campaign_waves', ['organization_id'])
    op.create_index('ix_campaign_waves_campaign_id', 'campaign_waves', ['campaign_id'])
    op.create_index('idx_campaign_waves_status', 'campaign_waves', ['campaign_id', 'status'])

    op.create_table(
        'campaign_assignments',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), sa.ForeignKey('campaigns.id'), nullable=False),
        sa.Column('employee_id', sa.String(), nullable=False),
        sa.Column('wave_id', sa.String(), sa.ForeignKey('campaign_waves.id'), nullable=True),
        sa.Column('recipient_snapshot', sa.JSON(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('reminder_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reminder_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('manager_notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('skipped_by', sa.String(), nullable=True),
        sa.Column('skip_reason', sa.Text(), nullable=True),
        sa.UniqueConstraint('campaign_id', 'employee_id', name='uq_campaign_assignment_employee'),
    )
    op.create_check_constraint(
        'check_assignment_status',
        'campaign_assignments',
        "status IN ('PENDING', 'NOTIFIED', 'IN_PROGRESS', 'COMPLETED', 'OVERDUE', 'SKIPPED')"
    )
    op.create_index('ix_campaign_assignments_organization_id', 'campaign_assignments', ['organization_id'])
    op.create_index('ix_campaign_assignments_campaign_id', 'campaign_assignments', ['campaign_id'])
    op.create_index('ix_campaign_assignments_employee_id', 'campaign_assignments', ['employee_id'])
    op.create_index('idx_campaign_assignments_sweep', 'campaign_assignments', ['status', 'due_date'])

    op.create_table(
        'org_blackout_dates',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('recurring_pattern', sa.String(20), nullable=True),
        sa.Column('affects_locations', sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_by_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('start_date < end_date', name='check_blackout_range'),
    )
    op.create_check_constraint(
        'check_recurring_pattern',
        'org_blackout_dates',
        "recurring_pattern IS NULL OR recurring_pattern IN ('YEARLY', 'QUARTERLY', 'MONTHLY')"
    )
    op.create_index('ix_org_blackout_dates_organization_id', 'org_blackout_dates', ['organization_id'])
    op.create_index('idx_org_blackout_dates_active', 'org_blackout_dates', ['organization_id', 'is_active'])

    op.create_table(
        'employee_compliance_profiles',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('employee_id', sa.String(), nullable=False),
        sa.Column('campaigns_assigned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('campaigns_completed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('campaigns_missed_deadline', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_response_days', sa.Float(), nullable=True),
        sa.Column('is_repeat_non_responder', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('last_campaign_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('organization_id', 'employee_id', name='uq_compliance_profile_employee'),
    )
    op.create_index('ix_employee_compliance_profiles_organization_id', 'employee_compliance_profiles', ['organization_id'])
    op.create_index('ix_employee_compliance_profiles_employee_id', 'employee_compliance_profiles', ['employee_id'])
    op.create_index(
        'idx_compliance_profiles_flagged',
        'employee_compliance_profiles',
        ['organization_id', 'campaigns_missed_deadline'],
        postgresql_where=sa.text('is_repeat_non_responder = true')
    )


def downgrade() -> None:
    op.drop_table('employee_compliance_profiles')
    op.drop_table('org_blackout_dates')
    op.drop_table('campaign_assignments')
    op.drop_table('campaign_waves')
    op.drop_table('campaigns')
