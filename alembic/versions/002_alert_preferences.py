"""Per-user alert preferences and security settings

Revision ID: 002_alert_preferences
Revises: 001_initial
Create Date: 2026-10-19 00:00:00.000000

Tags: schema, alerts
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_alert_preferences'
down_revision: Union[str, None] = '001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Creates security_alert_preferences, one row per user that changed a default.
    """
    op.create_table(
        'security_alert_preferences',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('push_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('alert_types', sa.JSON(), nullable=False),
        sa.Column('severity_threshold', sa.String(length=20), nullable=False, server_default='low'),
        sa.Column('new_device_alerts', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('location_alerts', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('suspicious_activity_alerts', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('failed_login_alerts', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('weekly_security_report', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('two_factor_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_security_alert_preferences_id', 'security_alert_preferences', ['id'])
    op.create_index('ix_security_alert_preferences_user_id', 'security_alert_preferences', ['user_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_security_alert_preferences_user_id', table_name='security_alert_preferences')
    op.drop_index('ix_security_alert_preferences_id', table_name='security_alert_preferences')
    op.drop_table('security_alert_preferences')
