"""Wallet recharge requests

Revision ID: 8f2d6a1c5e37
Revises: 3b7e1c9a4d20
Create Date: 2026-10-19 10:04:12.771530

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8f2d6a1c5e37'
down_revision: Union[str, Sequence[str], None] = '3b7e1c9a4d20'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('wallet_recharge_requests',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('seller_id', sa.Uuid(), nullable=False),
    sa.Column('amount_minor', sa.Integer(), nullable=False),
    sa.Column('utr_number', sa.String(length=50), nullable=False),
    sa.Column('transfer_date', sa.Date(), nullable=False),
    sa.Column('screenshot_url', sa.String(), nullable=False),
    sa.Column('status', sa.Enum('pending', 'approved', 'rejected', name='rechargestatus', native_enum=False, length=32), nullable=False),
    sa.Column('admin_remarks', sa.String(), nullable=True),
    sa.Column('processed_by', sa.Uuid(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('processed_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name=op.f('fk_wallet_recharge_requests_seller_id_sellers')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_wallet_recharge_requests_seller_id'), 'wallet_recharge_requests', ['seller_id'], unique=False)
    op.create_index(op.f('ix_wallet_recharge_requests_utr_number'), 'wallet_recharge_requests', ['utr_number'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_wallet_recharge_requests_utr_number'), table_name='wallet_recharge_requests')
    op.drop_index(op.f('ix_wallet_recharge_requests_seller_id'), table_name='wallet_recharge_requests')
    op.drop_table('wallet_recharge_requests')
