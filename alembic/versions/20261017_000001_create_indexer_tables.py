"""create indexer tables

Revision ID: 20261017_000001
Revises: 
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261017_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create cursor and record tables."""
    op.create_table(
        'indexer_state',
        sa.Column('indexer_id', sa.String(255), nullable=False),
        sa.Column('safe_height', sa.BigInteger(), nullable=False),
        sa.Column('min_height', sa.BigInteger(), nullable=False),
        sa.Column('max_height', sa.BigInteger(), nullable=True),
        sa.Column('config_hash', sa.String(64), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('error_count', sa.Integer(), nullable=False, default=0),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('indexer_id'),
    )

    op.create_table(
        'block_timestamps',
        sa.Column('chain', sa.String(64), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('chain', 'timestamp'),
    )

    op.create_table(
        'amounts',
        sa.Column('indexer_id', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('amount', sa.String(78), nullable=False),
        sa.PrimaryKeyConstraint('indexer_id', 'timestamp'),
    )

    op.create_table(
        'prices',
        sa.Column('price_id', sa.String(128), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('price_usd', sa.DECIMAL(38, 18), nullable=False),
        sa.PrimaryKeyConstraint('price_id', 'timestamp'),
    )

    op.create_table(
        'priced_values',
        sa.Column('data_source', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('project', sa.String(128), nullable=False),
        sa.Column('value_usd', sa.DECIMAL(38, 18), nullable=False),
        sa.Column('source', sa.String(16), nullable=False),
        sa.Column('include_in_total', sa.Boolean(), nullable=False, default=True),
        sa.PrimaryKeyConstraint('data_source', 'timestamp'),
    )

    # Indexes
    op.create_index(
        'ix_priced_values_project_timestamp', 'priced_values', ['project', 'timestamp']
    )


def downgrade() -> None:
    """Drop cursor and record tables."""
    op.drop_index('ix_priced_values_project_timestamp', table_name='priced_values')
    op.drop_table('priced_values')
    op.drop_table('prices')
    op.drop_table('amounts')
    op.drop_table('block_timestamps')
    op.drop_table('indexer_state')
