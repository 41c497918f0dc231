"""Add usage_daily table for the shared LLM token budget

Revision ID: add_usage_daily
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'add_usage_daily'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if 'usage_daily' not in existing_tables:
        op.create_table(
            'usage_daily',
            sa.Column('day', sa.Date(), primary_key=True),
            sa.Column('tokens_used', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint('tokens_used >= 0', name='usage_daily_tokens_non_negative'),
        )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if 'usage_daily' in set(inspector.get_table_names()):
        op.drop_table('usage_daily')
