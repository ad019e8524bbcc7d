"""add persisted ledger sequence

Revision ID: 20261019_002
Revises: 20261019_001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20261019_002'
down_revision: Union[str, None] = '20261019_001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    ledger_sequence = op.create_table(
        'ledger_sequence',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('value', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # Continue after the highest sequence any draw has already used
    bind = op.get_bind()
    used = [
        int(value)
        for value in bind.execute(sa.text(
            "SELECT draw_sequence FROM raffles WHERE draw_sequence IS NOT NULL"
        )).scalars()
    ]
    op.bulk_insert(ledger_sequence, [{'id': 1, 'value': max(used, default=0)}])


def downgrade() -> None:
    op.drop_table('ledger_sequence')
