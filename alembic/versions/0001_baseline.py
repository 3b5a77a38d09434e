"""Baseline migration - owners, trustees and the legacy access workflow

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-19

Creates owner/trustee tables (consumed by the workflow), the legacy access
request, confirmation and token tables, the jobs outbox and the audit log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TS = sa.DateTime(timezone=True)

ACTIVE_WHERE = sa.text(
    "status IN ('grace_period', 'granted', 'pending', 'under_review', 'verified')"
)


def upgrade() -> None:
    """Create all tables."""

    # ==========================================================================
    # Owners and trustees
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('token_version', sa.Integer(), nullable=False),
        sa.Column('created_at', TS, nullable=False),
    )
    op.create_index('uq_users_email_lower', 'users', [sa.text('lower(email)')], unique=True)

    op.create_table(
        'user_settings',
        sa.Column(
            'user_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True,
        ),
        sa.Column('legacy_release_enabled', sa.Boolean(), nullable=False),
        sa.Column('grace_period_days', sa.Integer(), nullable=True),
        sa.Column('access_duration_days', sa.Integer(), nullable=True),
    )

    op.create_table(
        'trustees',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'user_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('relationship', sa.String(100), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('created_at', TS, nullable=False),
    )
    op.create_index('idx_trustees_user_active', 'trustees', ['user_id', 'is_active'])

    # ==========================================================================
    # Legacy access requests
    # ==========================================================================
    op.create_table(
        'legacy_access_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'owner_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False,
        ),
        sa.Column('requester_name', sa.String(255), nullable=False),
        sa.Column('requester_email', sa.String(255), nullable=False),
        sa.Column('requester_phone', sa.String(50), nullable=True),
        sa.Column('relationship', sa.String(100), nullable=False),
        sa.Column('verification_method', sa.String(30), nullable=False),
        sa.Column('death_certificate_url', sa.Text(), nullable=True),
        sa.Column('death_certificate_uploaded_at', TS, nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('status_message', sa.Text(), nullable=True),
        sa.Column('total_trustees', sa.Integer(), nullable=False),
        sa.Column('required_confirmations', sa.Integer(), nullable=False),
        sa.Column('verified_by', sa.String(100), nullable=True),
        sa.Column('verified_at', TS, nullable=True),
        sa.Column('grace_period_start', TS, nullable=True),
        sa.Column('grace_period_end', TS, nullable=True),
        sa.Column('access_granted_at', TS, nullable=True),
        sa.Column('access_expires_at', TS, nullable=True),
        sa.Column('cancelled_at', TS, nullable=True),
        sa.Column('revoked_at', TS, nullable=True),
        sa.Column('created_at', TS, nullable=False),
        sa.Column('updated_at', TS, nullable=False),
    )
    op.create_index(
        'idx_legacy_requests_requester_email',
        'legacy_access_requests', ['requester_email', 'created_at'],
    )
    op.create_index(
        'idx_legacy_requests_status_grace_end',
        'legacy_access_requests', ['status', 'grace_period_end'],
    )
    op.create_index(
        'idx_legacy_requests_status_access_expires',
        'legacy_access_requests', ['status', 'access_expires_at'],
    )
    # One non-terminal request per (owner, requester email)
    op.create_index(
        'uq_legacy_requests_active_pair',
        'legacy_access_requests', ['owner_id', 'requester_email'],
        unique=True,
        postgresql_where=ACTIVE_WHERE,
        sqlite_where=ACTIVE_WHERE,
    )

    op.create_table(
        'trustee_confirmations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'request_id', sa.Uuid(),
            sa.ForeignKey('legacy_access_requests.id', ondelete='RESTRICT'), nullable=False,
        ),
        sa.Column(
            'trustee_id', sa.Uuid(),
            sa.ForeignKey('trustees.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('responded_at', TS, nullable=True),
        sa.Column('created_at', TS, nullable=False),
    )
    op.create_index('uq_trustee_confirmations_token', 'trustee_confirmations', ['token'], unique=True)
    op.create_index(
        'uq_trustee_confirmations_request_trustee',
        'trustee_confirmations', ['request_id', 'trustee_id'], unique=True,
    )

    op.create_table(
        'legacy_access_tokens',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'request_id', sa.Uuid(),
            sa.ForeignKey('legacy_access_requests.id', ondelete='RESTRICT'), nullable=False,
        ),
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column('expires_at', TS, nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', TS, nullable=True),
        sa.Column('last_used_at', TS, nullable=True),
        sa.Column('created_at', TS, nullable=False),
    )
    op.create_index('uq_legacy_access_tokens_request', 'legacy_access_tokens', ['request_id'], unique=True)
    op.create_index('uq_legacy_access_tokens_token', 'legacy_access_tokens', ['token'], unique=True)

    # ==========================================================================
    # Jobs (background work + notification outbox)
    # ==========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('payload', JSON_TYPE, nullable=False),
        sa.Column('run_at', TS, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', TS, nullable=False),
        sa.Column('completed_at', TS, nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
    )
    op.create_index(
        'idx_jobs_pending', 'jobs', ['status', 'run_at'],
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        'uq_job_idempotency', 'jobs', ['idempotency_key'],
        unique=True,
        postgresql_where=sa.text('idempotency_key IS NOT NULL'),
        sqlite_where=sa.text('idempotency_key IS NOT NULL'),
    )

    # ==========================================================================
    # Audit log
    # ==========================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'owner_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column(
            'actor_user_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('target_type', sa.String(50), nullable=True),
        sa.Column('target_id', sa.Uuid(), nullable=True),
        sa.Column('details', JSON_TYPE, nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', TS, nullable=False),
    )
    op.create_index('idx_audit_owner_created', 'audit_logs', ['owner_id', 'created_at'])
    op.create_index('idx_audit_target', 'audit_logs', ['target_type', 'target_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('audit_logs')
    op.drop_table('jobs')
    op.drop_table('legacy_access_tokens')
    op.drop_table('trustee_confirmations')
    op.drop_table('legacy_access_requests')
    op.drop_table('trustees')
    op.drop_table('user_settings')
    op.drop_table('users')
