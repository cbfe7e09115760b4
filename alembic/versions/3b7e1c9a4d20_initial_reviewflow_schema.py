"""Initial ReviewFlow schema

Revision ID: 3b7e1c9a4d20
Revises:
Create Date: 2026-10-12 11:20:43.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3b7e1c9a4d20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('email', sa.String(length=100), nullable=False),
    sa.Column('mobile', sa.String(length=15), nullable=True),
    sa.Column('role', _enum('userrole', 'user', 'admin'), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_table('sellers',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('email', sa.String(length=100), nullable=False),
    sa.Column('mobile', sa.String(length=15), nullable=True),
    sa.Column('company_name', sa.String(length=255), nullable=True),
    sa.Column('gst_number', sa.String(length=20), nullable=True),
    sa.Column('billing_address', sa.String(), nullable=True),
    sa.Column('state_code', sa.String(length=2), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_table('review_requests',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('seller_id', sa.Uuid(), nullable=False),
    sa.Column('product_link', sa.String(), nullable=False),
    sa.Column('product_name', sa.String(length=255), nullable=False),
    sa.Column('brand_name', sa.String(length=255), nullable=False),
    sa.Column('platform', sa.String(length=50), nullable=False),
    sa.Column('product_price_minor', sa.Integer(), nullable=False),
    sa.Column('admin_commission_minor', sa.Integer(), nullable=False),
    sa.Column('reviews_needed', sa.Integer(), nullable=False),
    sa.Column('gst_rate', sa.Numeric(precision=5, scale=2), nullable=False),
    sa.Column('total_amount_minor', sa.Integer(), nullable=False),
    sa.Column('gst_amount_minor', sa.Integer(), nullable=False),
    sa.Column('grand_total_minor', sa.Integer(), nullable=False),
    sa.Column('reviews_completed', sa.Integer(), nullable=False),
    sa.Column('payment_status', _enum('paymentstatus', 'pending', 'paid', 'failed', 'refunded'), nullable=False),
    sa.Column('payment_id', sa.String(length=100), nullable=True),
    sa.Column('payment_method', sa.String(length=20), nullable=True),
    sa.Column('admin_status', _enum('adminstatus', 'pending', 'approved', 'completed', 'rejected'), nullable=False),
    sa.Column('admin_note', sa.String(), nullable=True),
    sa.Column('rejection_reason', sa.String(), nullable=True),
    sa.Column('approved_by', sa.Uuid(), nullable=True),
    sa.Column('approved_at', sa.DateTime(), nullable=True),
    sa.Column('rejected_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name=op.f('fk_review_requests_seller_id_sellers')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_review_requests_seller_id'), 'review_requests', ['seller_id'], unique=False)
    op.create_table('tasks',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('review_request_id', sa.Uuid(), nullable=True),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('seller_id', sa.Uuid(), nullable=False),
    sa.Column('product_link', sa.String(), nullable=False),
    sa.Column('brand_name', sa.String(length=255), nullable=True),
    sa.Column('commission_minor', sa.Integer(), nullable=False),
    sa.Column('task_status', _enum('taskstatus', 'assigned', 'in_progress', 'completed', 'rejected'), nullable=False),
    sa.Column('refund_requested', sa.Boolean(), nullable=False),
    sa.Column('deadline', sa.Date(), nullable=True),
    sa.Column('admin_notes', sa.String(), nullable=True),
    sa.Column('assigned_by', sa.Uuid(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['review_request_id'], ['review_requests.id'], name=op.f('fk_tasks_review_request_id_review_requests')),
    sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name=op.f('fk_tasks_seller_id_sellers')),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_tasks_user_id_users')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tasks_review_request_id'), 'tasks', ['review_request_id'], unique=False)
    op.create_index(op.f('ix_tasks_user_id'), 'tasks', ['user_id'], unique=False)
    op.create_table('task_steps',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('task_id', sa.Uuid(), nullable=False),
    sa.Column('step_number', sa.Integer(), nullable=False),
    sa.Column('step_name', sa.String(length=50), nullable=False),
    sa.Column('step_status', _enum('stepstatus', 'pending', 'completed', 'rejected'), nullable=False),
    sa.Column('order_number', sa.String(length=100), nullable=True),
    sa.Column('order_date', sa.Date(), nullable=True),
    sa.Column('order_name', sa.String(length=255), nullable=True),
    sa.Column('product_name', sa.String(length=255), nullable=True),
    sa.Column('order_amount_minor', sa.Integer(), nullable=True),
    sa.Column('screenshot_url', sa.String(), nullable=True),
    sa.Column('payment_qr_url', sa.String(), nullable=True),
    sa.Column('refund_amount_minor', sa.Integer(), nullable=True),
    sa.Column('processed_by', sa.Uuid(), nullable=True),
    sa.Column('rejection_reason', sa.String(), nullable=True),
    sa.Column('submitted_at', sa.DateTime(), nullable=True),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['task_id'], ['tasks.id'], name=op.f('fk_task_steps_task_id_tasks')),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('task_id', 'step_number', name='uq_task_steps_task_step')
    )
    op.create_index(op.f('ix_task_steps_order_number'), 'task_steps', ['order_number'], unique=False)
    op.create_table('wallets',
    sa.Column('owner_type', _enum('ownertype', 'seller', 'user'), nullable=False),
    sa.Column('owner_id', sa.Uuid(), nullable=False),
    sa.Column('balance_minor', sa.Integer(), nullable=False),
    sa.Column('total_spent_minor', sa.Integer(), nullable=False),
    sa.Column('total_earned_minor', sa.Integer(), nullable=False),
    sa.Column('total_withdrawn_minor', sa.Integer(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('balance_minor >= 0', name='ck_wallets_balance_non_negative'),
    sa.PrimaryKeyConstraint('owner_type', 'owner_id')
    )
    op.create_table('payment_transactions',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('owner_type', _enum('ownertype', 'seller', 'user'), nullable=False),
    sa.Column('owner_id', sa.Uuid(), nullable=False),
    sa.Column('review_request_id', sa.Uuid(), nullable=True),
    sa.Column('direction', _enum('txdirection', 'debit', 'credit'), nullable=False),
    sa.Column('amount_minor', sa.Integer(), nullable=False),
    sa.Column('base_amount_minor', sa.Integer(), nullable=True),
    sa.Column('gst_amount_minor', sa.Integer(), nullable=False),
    sa.Column('balance_after_minor', sa.Integer(), nullable=True),
    sa.Column('gateway', _enum('txgateway', 'wallet', 'razorpay', 'payu', 'demo', 'admin', 'refund', 'commission', 'withdrawal'), nullable=False),
    sa.Column('gateway_order_id', sa.String(length=100), nullable=True),
    sa.Column('gateway_payment_id', sa.String(length=100), nullable=True),
    sa.Column('gateway_signature', sa.String(length=256), nullable=True),
    sa.Column('reference_id', sa.Uuid(), nullable=True),
    sa.Column('reference_type', sa.String(length=30), nullable=True),
    sa.Column('status', _enum('txstatus', 'pending', 'success', 'failed'), nullable=False),
    sa.Column('description', sa.String(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['review_request_id'], ['review_requests.id'], name=op.f('fk_payment_transactions_review_request_id_review_requests')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payment_transactions_owner_id'), 'payment_transactions', ['owner_id'], unique=False)
    op.create_index(op.f('ix_payment_transactions_review_request_id'), 'payment_transactions', ['review_request_id'], unique=False)
    op.create_table('tax_invoices',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('invoice_number', sa.String(length=40), nullable=False),
    sa.Column('seller_id', sa.Uuid(), nullable=False),
    sa.Column('review_request_id', sa.Uuid(), nullable=False),
    sa.Column('payment_transaction_id', sa.Uuid(), nullable=True),
    sa.Column('seller_gst', sa.String(length=20), nullable=True),
    sa.Column('seller_legal_name', sa.String(length=255), nullable=False),
    sa.Column('seller_address', sa.String(), nullable=True),
    sa.Column('platform_gst', sa.String(length=20), nullable=True),
    sa.Column('platform_legal_name', sa.String(length=255), nullable=False),
    sa.Column('platform_address', sa.String(), nullable=True),
    sa.Column('base_amount_minor', sa.Integer(), nullable=False),
    sa.Column('cgst_minor', sa.Integer(), nullable=False),
    sa.Column('sgst_minor', sa.Integer(), nullable=False),
    sa.Column('igst_minor', sa.Integer(), nullable=False),
    sa.Column('total_gst_minor', sa.Integer(), nullable=False),
    sa.Column('grand_total_minor', sa.Integer(), nullable=False),
    sa.Column('sac_code', sa.String(length=10), nullable=False),
    sa.Column('invoice_date', sa.Date(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['payment_transaction_id'], ['payment_transactions.id'], name=op.f('fk_tax_invoices_payment_transaction_id_payment_transactions')),
    sa.ForeignKeyConstraint(['review_request_id'], ['review_requests.id'], name=op.f('fk_tax_invoices_review_request_id_review_requests')),
    sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name=op.f('fk_tax_invoices_seller_id_sellers')),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('invoice_number'),
    sa.UniqueConstraint('review_request_id')
    )
    op.create_index(op.f('ix_tax_invoices_seller_id'), 'tax_invoices', ['seller_id'], unique=False)
    op.create_table('payment_orders',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('gateway', sa.String(length=20), nullable=False),
    sa.Column('gateway_order_id', sa.String(length=100), nullable=False),
    sa.Column('review_request_id', sa.Uuid(), nullable=False),
    sa.Column('seller_id', sa.Uuid(), nullable=False),
    sa.Column('amount_minor', sa.Integer(), nullable=False),
    sa.Column('status', _enum('paymentorderstatus', 'created', 'paid', 'failed'), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['review_request_id'], ['review_requests.id'], name=op.f('fk_payment_orders_review_request_id_review_requests')),
    sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name=op.f('fk_payment_orders_seller_id_sellers')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payment_orders_gateway_order_id'), 'payment_orders', ['gateway_order_id'], unique=True)
    op.create_table('withdrawal_requests',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('amount_minor', sa.Integer(), nullable=False),
    sa.Column('status', _enum('withdrawalstatus', 'pending', 'approved', 'completed', 'rejected'), nullable=False),
    sa.Column('requisites_json', sa.JSON(), nullable=False),
    sa.Column('admin_note', sa.String(), nullable=True),
    sa.Column('gateway_ref', sa.String(length=100), nullable=True),
    sa.Column('processed_by', sa.Uuid(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('processed_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_withdrawal_requests_user_id_users')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_withdrawal_requests_user_id'), 'withdrawal_requests', ['user_id'], unique=False)
    op.create_table('job_queue',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('job_type', sa.String(length=50), nullable=False),
    sa.Column('payload', sa.JSON(), nullable=False),
    sa.Column('priority', sa.Integer(), nullable=False),
    sa.Column('status', _enum('jobstatus', 'pending', 'processing', 'completed', 'failed'), nullable=False),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('max_attempts', sa.Integer(), nullable=False),
    sa.Column('error_message', sa.String(), nullable=True),
    sa.Column('scheduled_at', sa.DateTime(), nullable=True),
    sa.Column('started_at', sa.DateTime(), nullable=True),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_job_queue_status'), 'job_queue', ['status'], unique=False)
    op.create_table('seo_pages',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('page_slug', sa.String(length=255), nullable=False),
    sa.Column('canonical_url', sa.String(), nullable=True),
    sa.Column('no_index', sa.Boolean(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('page_slug')
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('seo_pages')
    op.drop_index(op.f('ix_job_queue_status'), table_name='job_queue')
    op.drop_table('job_queue')
    op.drop_index(op.f('ix_withdrawal_requests_user_id'), table_name='withdrawal_requests')
    op.drop_table('withdrawal_requests')
    op.drop_index(op.f('ix_payment_orders_gateway_order_id'), table_name='payment_orders')
    op.drop_table('payment_orders')
    op.drop_index(op.f('ix_tax_invoices_seller_id'), table_name='tax_invoices')
    op.drop_table('tax_invoices')
    op.drop_index(op.f('ix_payment_transactions_review_request_id'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_owner_id'), table_name='payment_transactions')
    op.drop_table('payment_transactions')
    op.drop_table('wallets')
    op.drop_index(op.f('ix_task_steps_order_number'), table_name='task_steps')
    op.drop_table('task_steps')
    op.drop_index(op.f('ix_tasks_user_id'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_review_request_id'), table_name='tasks')
    op.drop_table('tasks')
    op.drop_index(op.f('ix_review_requests_seller_id'), table_name='review_requests')
    op.drop_table('review_requests')
    op.drop_table('sellers')
    op.drop_table('users')
