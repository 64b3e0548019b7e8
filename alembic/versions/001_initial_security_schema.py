"""Initial session security schema

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000

Tags: schema, initial
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Creates users, login_sessions, session_audit_logs and security_alerts.
    """
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'login_sessions',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('refresh_token_family', sa.String(length=64), nullable=False),
        sa.Column('device_type', sa.String(length=20), nullable=False),
        sa.Column('device_os', sa.String(length=50), nullable=False),
        sa.Column('device_browser', sa.String(length=50), nullable=False),
        sa.Column('device_app', sa.String(length=50), nullable=False),
        sa.Column('user_agent', sa.String(length=200), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=False),
        sa.Column('country', sa.String(length=100), nullable=False),
        sa.Column('country_code', sa.String(length=8), nullable=False),
        sa.Column('region', sa.String(length=100), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('isp', sa.String(length=255), nullable=False),
        sa.Column('is_vpn', sa.Boolean(), nullable=False),
        sa.Column('is_proxy', sa.Boolean(), nullable=False),
        sa.Column('is_tor', sa.Boolean(), nullable=False),
        sa.Column('risk_score', sa.Integer(), nullable=False),
        sa.Column('risk_factors', sa.JSON(), nullable=False),
        sa.Column('requires_verification', sa.Boolean(), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoke_reason', sa.String(length=100), nullable=True),
        sa.Column('login_method', sa.String(length=20), nullable=False),
        sa.Column('session_duration_seconds', sa.Integer(), nullable=False),
        sa.Column('refresh_count', sa.Integer(), nullable=False),
        sa.Column('last_refreshed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('risk_score >= 0 AND risk_score <= 100', name='ck_login_sessions_risk_score'),
    )
    op.create_index('ix_login_sessions_user_id', 'login_sessions', ['user_id'])
    op.create_index('ix_login_sessions_refresh_token_family', 'login_sessions', ['refresh_token_family'], unique=True)
    op.create_index('ix_login_sessions_ip_address', 'login_sessions', ['ip_address'])
    op.create_index('ix_login_sessions_country', 'login_sessions', ['country'])
    op.create_index('ix_login_sessions_is_active', 'login_sessions', ['is_active'])
    op.create_index('ix_login_sessions_created_at', 'login_sessions', ['created_at'])
    op.create_index('ix_login_sessions_last_active_at', 'login_sessions', ['last_active_at'])
    op.create_index('ix_login_sessions_expires_at', 'login_sessions', ['expires_at'])
    op.create_index('ix_login_sessions_user_active', 'login_sessions', ['user_id', 'is_active'])
    op.create_index('ix_login_sessions_user_created', 'login_sessions', ['user_id', 'created_at'])

    op.create_table(
        'session_audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('session_id', sa.String(length=36), sa.ForeignKey('login_sessions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('event_type', sa.String(length=20), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('correlation_id', sa.String(length=100), nullable=True),
    )
    op.create_index('ix_session_audit_logs_id', 'session_audit_logs', ['id'])
    op.create_index('ix_session_audit_logs_user_id', 'session_audit_logs', ['user_id'])
    op.create_index('ix_session_audit_logs_session_id', 'session_audit_logs', ['session_id'])
    op.create_index('ix_session_audit_logs_event_type', 'session_audit_logs', ['event_type'])
    op.create_index('ix_session_audit_logs_timestamp', 'session_audit_logs', ['timestamp'])
    op.create_index('ix_session_audit_logs_ip_address', 'session_audit_logs', ['ip_address'])
    op.create_index('ix_session_audit_logs_correlation_id', 'session_audit_logs', ['correlation_id'])

    op.create_table(
        'security_alerts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('session_id', sa.String(length=36), sa.ForeignKey('login_sessions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('notifications', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('user_actions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_security_alerts_id', 'security_alerts', ['id'])
    op.create_index('ix_security_alerts_user_id', 'security_alerts', ['user_id'])
    op.create_index('ix_security_alerts_session_id', 'security_alerts', ['session_id'])
    op.create_index('ix_security_alerts_severity', 'security_alerts', ['severity'])
    op.create_index('ix_security_alerts_status', 'security_alerts', ['status'])
    op.create_index('ix_security_alerts_created_at', 'security_alerts', ['created_at'])
    op.create_index('ix_security_alerts_user_created', 'security_alerts', ['user_id', 'created_at'])
    op.create_index('ix_security_alerts_user_status', 'security_alerts', ['user_id', 'status'])
    op.create_index('ix_security_alerts_user_type', 'security_alerts', ['user_id', 'type'])


def downgrade() -> None:
    op.drop_table('security_alerts')
    op.drop_table('session_audit_logs')
    op.drop_table('login_sessions')
    op.drop_table('users')
