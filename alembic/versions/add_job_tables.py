"""Add completion, refund and void job tables

Revision ID: add_job_tables
Revises: add_transaction_infos
Create Date: 2026-10-19 09:10:00.000000

"""
from typing import List, Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'add_job_tables'
down_revision: Union[str, None] = 'add_transaction_infos'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')

INDEXED_COLUMNS = ['job_id', 'space_id', 'transaction_id', 'order_id', 'state', 'updated_at']


def _job_columns() -> List[sa.Column]:
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.BigInteger(), nullable=True),
        sa.Column('space_id', sa.BigInteger(), nullable=False),
        sa.Column('transaction_id', sa.BigInteger(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('labels', JSONType, nullable=False),
        sa.Column('failure_reason', JSONType, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _create_job_table(name: str, *extra_columns: sa.Column) -> None:
    op.create_table(
        name,
        *_job_columns(),
        *extra_columns,
        sa.PrimaryKeyConstraint('id')
    )
    for column in INDEXED_COLUMNS:
        op.create_index(f'ix_{name}_{column}', name, [column], unique=False)


def _drop_job_table(name: str) -> None:
    for column in INDEXED_COLUMNS:
        op.drop_index(f'ix_{name}_{column}', table_name=name)
    op.drop_table(name)


def upgrade() -> None:
    _create_job_table(
        'completion_jobs',
        sa.Column('amount', sa.Numeric(precision=19, scale=8), nullable=True),
    )
    _create_job_table(
        'refund_jobs',
        sa.Column('external_id', sa.String(length=100), nullable=True),
        sa.Column('restock', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reduction_items', JSONType, nullable=False),
        sa.Column('amount', sa.Numeric(precision=19, scale=8), nullable=True),
    )
    op.create_index('ix_refund_jobs_external_id', 'refund_jobs', ['external_id'], unique=False)
    _create_job_table('void_jobs')


def downgrade() -> None:
    _drop_job_table('void_jobs')
    op.drop_index('ix_refund_jobs_external_id', table_name='refund_jobs')
    _drop_job_table('refund_jobs')
    _drop_job_table('completion_jobs')
