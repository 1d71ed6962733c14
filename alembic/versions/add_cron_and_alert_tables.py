"""Add cron claim and alert tables

Revision ID: add_cron_and_alerts
Revises: add_job_tables
Create Date: 2026-10-19 09:20:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'add_cron_and_alerts'
down_revision: Union[str, None] = 'add_job_tables'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'cron_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('security_token', sa.String(length=36), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('constraint_key', sa.Integer(), nullable=False),
        sa.Column('date_scheduled', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_started', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_completed', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        # At most one pending (key 0) and one processing (key -1) row
        sa.UniqueConstraint('state', 'constraint_key', name='uq_cron_jobs_state_constraint_key')
    )
    op.create_index('ix_cron_jobs_security_token', 'cron_jobs', ['security_token'], unique=False)

    alerts = op.create_table(
        'alerts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('key', sa.String(length=50), nullable=False),
        sa.Column('route', sa.String(length=255), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key')
    )
    op.bulk_insert(alerts, [
        {'key': 'manual_task', 'route': '/manual-tasks', 'level': 'warning', 'count': 0},
        {'key': 'failed_jobs', 'route': '/orders/failed-jobs', 'level': 'danger', 'count': 0},
    ])


def downgrade() -> None:
    op.drop_table('alerts')
    op.drop_index('ix_cron_jobs_security_token', table_name='cron_jobs')
    op.drop_table('cron_jobs')
