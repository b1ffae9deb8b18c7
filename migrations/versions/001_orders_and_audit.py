"""orders and audit tables

Revision ID: 001_orders_and_audit
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_orders_and_audit'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - create all tables."""
    # Create orders table
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_order_id', sa.String(length=64), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=True),
        sa.Column('customer_name', sa.String(length=128), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('course_reference', sa.String(length=64), nullable=True),
        sa.Column('transaction_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("status IN ('PENDING','SUCCESS','FAILED')", name='ck_orders_status'),
        sa.CheckConstraint(
            "(status = 'SUCCESS' AND order_number IS NOT NULL) OR "
            "(status <> 'SUCCESS' AND order_number IS NULL)",
            name='ck_orders_order_number_success',
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
    )
    op.create_index(op.f('ix_orders_merchant_order_id'), 'orders', ['merchant_order_id'], unique=True)
    op.create_index(op.f('ix_orders_status'), 'orders', ['status'], unique=False)

    # Create webhook_events table
    op.create_table('webhook_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('merchant_order_id', sa.String(length=64), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='received'),
        sa.Column('error', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_webhook_events_id'), 'webhook_events', ['id'], unique=False)
    op.create_index(op.f('ix_webhook_events_provider'), 'webhook_events', ['provider'], unique=False)
    op.create_index(op.f('ix_webhook_events_merchant_order_id'), 'webhook_events', ['merchant_order_id'], unique=False)
    op.create_index(op.f('ix_webhook_events_status'), 'webhook_events', ['status'], unique=False)

    # Create recon_logs table
    op.create_table('recon_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_order_id', sa.String(length=64), nullable=False),
        sa.Column('internal_status', sa.String(length=16), nullable=True),
        sa.Column('external_status', sa.String(length=32), nullable=True),
        sa.Column('result', sa.String(length=16), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_recon_logs_merchant_order_id'), 'recon_logs', ['merchant_order_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema - drop all tables."""
    op.drop_index(op.f('ix_recon_logs_merchant_order_id'), table_name='recon_logs')
    op.drop_table('recon_logs')
    op.drop_index(op.f('ix_webhook_events_status'), table_name='webhook_events')
    op.drop_index(op.f('ix_webhook_events_merchant_order_id'), table_name='webhook_events')
    op.drop_index(op.f('ix_webhook_events_provider'), table_name='webhook_events')
    op.drop_index(op.f('ix_webhook_events_id'), table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index(op.f('ix_orders_status'), table_name='orders')
    op.drop_index(op.f('ix_orders_merchant_order_id'), table_name='orders')
    op.drop_table('orders')
