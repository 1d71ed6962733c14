"""Add transaction_infos table

Revision ID: add_transaction_infos
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'add_transaction_infos'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'transaction_infos',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('space_id', sa.BigInteger(), nullable=False),
        sa.Column('transaction_id', sa.BigInteger(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(length=30), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('authorization_amount', sa.Numeric(precision=19, scale=8), nullable=True),
        sa.Column('language', sa.String(length=10), nullable=True),
        sa.Column('labels', JSONType, nullable=False),
        sa.Column('failure_reason', JSONType, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('space_id', 'transaction_id', name='uq_transaction_infos_space_transaction')
    )
    op.create_index('ix_transaction_infos_order_id', 'transaction_infos', ['order_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_transaction_infos_order_id', table_name='transaction_infos')
    op.drop_table('transaction_infos')
