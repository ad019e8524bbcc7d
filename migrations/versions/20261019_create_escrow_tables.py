"""create raffle escrow tables

Revision ID: 20261019_001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20261019_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Wide integers (u64 / i128) are stored as decimal text
WIDE = sa.String(40)

RAFFLE_STATUS = sa.Enum(
    'proposed', 'active', 'drawing', 'finalized', 'claimed', 'cancelled', name='rafflestatus'
)
RANDOMNESS_SOURCE = sa.Enum('internal', 'external', name='randomnesssource')


def upgrade() -> None:
    op.create_table(
        'raffles',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('creator', sa.String(128), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('end_time', WIDE, nullable=False),
        sa.Column('max_tickets', sa.BigInteger(), nullable=False),
        sa.Column('allow_multiple', sa.Boolean(), nullable=False),
        sa.Column('ticket_price', WIDE, nullable=False),
        sa.Column('payment_token', sa.String(128), nullable=False),
        sa.Column('prize_amount', WIDE, nullable=False),
        sa.Column('randomness_source', RANDOMNESS_SOURCE, nullable=False),
        sa.Column('protocol_fee_bp', sa.Integer(), nullable=False),
        sa.Column('tickets_sold', sa.BigInteger(), nullable=False),
        sa.Column('status', RAFFLE_STATUS, nullable=False),
        sa.Column('prize_deposited', sa.Boolean(), nullable=False),
        sa.Column('prize_claimed', sa.Boolean(), nullable=False),
        sa.Column('prize_refunded', sa.Boolean(), nullable=False),
        sa.Column('tickets_refunded', sa.BigInteger(), nullable=False),
        sa.Column('paid_out', WIDE, nullable=False),
        sa.Column('winner', sa.String(128), nullable=True),
        sa.Column('winning_ticket_id', sa.BigInteger(), nullable=True),
        sa.Column('draw_sequence', WIDE, nullable=True),
        sa.Column('oracle_address', sa.String(128), nullable=True),
        sa.Column('pending_seed', sa.JSON(), nullable=True),
        sa.Column('random_seed', WIDE, nullable=True),
        sa.Column('created_at', WIDE, nullable=False),
        sa.Column('finalized_at', WIDE, nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_raffles_creator', 'raffles', ['creator'])

    op.create_table(
        'tickets',
        sa.Column('raffle_id', sa.BigInteger(), nullable=False),
        sa.Column('ticket_id', sa.BigInteger(), nullable=False),
        sa.Column('buyer', sa.String(128), nullable=False),
        sa.Column('purchase_time', WIDE, nullable=False),
        sa.Column('refunded', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['raffle_id'], ['raffles.id'], ),
        sa.PrimaryKeyConstraint('raffle_id', 'ticket_id'),
    )
    op.create_index('ix_tickets_buyer', 'tickets', ['buyer'])

    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('namespace', sa.String(32), nullable=False),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('raffle_id', sa.BigInteger(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_events_name', 'events', ['name'])
    op.create_index('ix_events_raffle_id', 'events', ['raffle_id'])

    op.create_table(
        'token_balances',
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column('account', sa.String(128), nullable=False),
        sa.Column('balance', WIDE, nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('token', 'account'),
    )

    op.create_table(
        'contract_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('admin', sa.String(128), nullable=False),
        sa.Column('pending_admin', sa.String(128), nullable=True),
        sa.Column('protocol_fee_bp', sa.Integer(), nullable=False),
        sa.Column('treasury', sa.String(128), nullable=True),
        sa.Column('oracle_address', sa.String(128), nullable=True),
        sa.Column('paused', sa.Boolean(), nullable=False),
        sa.Column('accrued_fees', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    op.drop_table('contract_config')
    op.drop_table('token_balances')
    op.drop_index('ix_events_raffle_id', table_name='events')
    op.drop_index('ix_events_name', table_name='events')
    op.drop_table('events')
    op.drop_index('ix_tickets_buyer', table_name='tickets')
    op.drop_table('tickets')
    op.drop_index('ix_raffles_creator', table_name='raffles')
    op.drop_table('raffles')
    RAFFLE_STATUS.drop(op.get_bind(), checkfirst=True)
    RANDOMNESS_SOURCE.drop(op.get_bind(), checkfirst=True)
