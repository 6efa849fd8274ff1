"""Baseline migration - onboardings, audit trail and background jobs

Revision ID: 0001_onboarding_baseline
Revises:
Create Date: 2026-10-18

Creates:
- onboardings (identity, lifecycle, invite/OTP session, encrypted form payloads)
- onboarding_audit_logs
- jobs
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_onboarding_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # onboardings
    # ==========================================================================
    op.create_table(
        'onboardings',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('subsidiary', sa.String(10), nullable=False),
        sa.Column('method', sa.String(10), nullable=False),

        # Identity
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),

        # Lifecycle
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('is_form_complete', sa.Boolean(), server_default=sa.text('FALSE'), nullable=False),
        sa.Column('is_completed', sa.Boolean(), server_default=sa.text('FALSE'), nullable=False),

        # Invite + OTP
        sa.Column('invite_token_hash', sa.String(64), nullable=True),
        sa.Column('invite_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invite_last_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('otp_hash', sa.String(64), nullable=True),
        sa.Column('otp_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('otp_attempts', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('otp_locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('otp_last_sent_at', sa.DateTime(timezone=True), nullable=True),

        # Form payloads (Fernet-encrypted JSON)
        sa.Column('india_form_data', sa.Text(), nullable=True),
        sa.Column('canada_form_data', sa.Text(), nullable=True),
        sa.Column('us_form_data', sa.Text(), nullable=True),
        sa.Column('location_at_submit', postgresql.JSONB(astext_type=sa.Text()), nullable=True),

        # HR review
        sa.Column('modification_request_message', sa.Text(), nullable=True),
        sa.Column('modification_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('employee_number', sa.String(50), nullable=True),
        sa.Column('termination_type', sa.String(20), nullable=True),
        sa.Column('termination_reason', sa.Text(), nullable=True),

        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('terminated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subsidiary', 'employee_number', name='uq_onboarding_employee_number'),
    )
    op.create_index('idx_onboardings_status', 'onboardings', ['status'])
    op.create_index('idx_onboardings_email', 'onboardings', ['email'])
    op.create_index('idx_onboardings_invite_token_hash', 'onboardings', ['invite_token_hash'])

    # ==========================================================================
    # onboarding_audit_logs
    # ==========================================================================
    op.create_table(
        'onboarding_audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('onboarding_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(40), nullable=False),
        sa.Column('actor_type', sa.String(20), nullable=False),
        sa.Column('actor_id', sa.String(100), nullable=True),
        sa.Column('actor_name', sa.String(200), nullable=True),
        sa.Column('actor_email', sa.String(255), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['onboarding_id'], ['onboardings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_onboarding_audit_onboarding_created',
        'onboarding_audit_logs',
        ['onboarding_id', 'created_at'],
    )

    # ==========================================================================
    # jobs
    # ==========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('run_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('attempts', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('max_attempts', sa.Integer(), server_default=sa.text('3'), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('progress_percent', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('result', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_jobs_pending',
        'jobs',
        ['status', 'run_at'],
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index('idx_jobs_pending', table_name='jobs')
    op.drop_table('jobs')
    op.drop_index('idx_onboarding_audit_onboarding_created', table_name='onboarding_audit_logs')
    op.drop_table('onboarding_audit_logs')
    op.drop_index('idx_onboardings_invite_token_hash', table_name='onboardings')
    op.drop_index('idx_onboardings_email', table_name='onboardings')
    op.drop_index('idx_onboardings_status', table_name='onboardings')
    op.drop_table('onboardings')
