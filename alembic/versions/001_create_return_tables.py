"""Create return request and carrier shipment tables

Revision ID: 001_return_tables
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers
revision = '001_return_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create return_requests and carrier_shipments"""

    # ====================
    # RETURN REQUESTS
    # ====================
    op.create_table(
        'return_requests',
        sa.Column('id', sa.String(40), primary_key=True),
        sa.Column('order_id', sa.String(100), nullable=False),
        sa.Column('customer_id', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), server_default='requested', nullable=False),
        sa.Column('return_type', sa.String(20), server_default='refund', nullable=False),
        sa.Column('reason', sa.String(30), nullable=False),
        sa.Column('reason_details', sa.Text, nullable=True),
        sa.Column('items', JSONB, server_default='[]', nullable=False),
        sa.Column('refund_amount', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('shipping_refund', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('total_refund', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('original_order_total', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('coupon_code', sa.String(100), nullable=True),
        sa.Column('coupon_discount', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('points_redeemed', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('points_discount', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('pwp_discount', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('return_tracking_number', sa.String(100), nullable=True),
        sa.Column('return_courier', sa.String(100), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.Text, nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('refund_status', sa.String(20), nullable=True),
        sa.Column('refund_reference', sa.String(100), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('replacement_order_id', sa.String(100), nullable=True),
        sa.Column('replacement_created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer, server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint('total_refund = refund_amount + shipping_refund', name='ck_return_requests_total_refund'),
    )

    op.create_index('ix_return_requests_order_id', 'return_requests', ['order_id'])
    op.create_index('ix_return_requests_customer_id', 'return_requests', ['customer_id'])
    op.create_index('ix_return_requests_status', 'return_requests', ['status'])

    # ====================
    # CARRIER SHIPMENTS
    # ====================
    op.create_table(
        'carrier_shipments',
        sa.Column('id', sa.String(40), primary_key=True),
        sa.Column('return_id', sa.String(40), nullable=False),
        sa.Column('order_id', sa.String(100), nullable=False),
        sa.Column('order_no', sa.String(100), nullable=True),
        sa.Column('parcel_no', sa.String(100), nullable=True),
        sa.Column('awb', sa.String(100), nullable=True),
        sa.Column('tracking_url', sa.String(500), nullable=True),
        sa.Column('service_id', sa.String(50), nullable=False),
        sa.Column('service_name', sa.String(200), server_default='', nullable=False),
        sa.Column('courier_id', sa.String(50), nullable=False),
        sa.Column('courier_name', sa.String(200), server_default='', nullable=False),
        sa.Column('weight', sa.Float, nullable=False),
        sa.Column('rate', sa.BigInteger, server_default='0', nullable=False),
        sa.Column('pickup_date', sa.String(10), nullable=True),
        sa.Column('pickup_time', sa.String(20), nullable=True),
        sa.Column('sender_name', sa.String(200), nullable=False),
        sa.Column('sender_phone', sa.String(20), nullable=False),
        sa.Column('sender_address', sa.String(500), nullable=False),
        sa.Column('sender_postcode', sa.String(20), nullable=False),
        sa.Column('sender_country', sa.String(2), server_default='SG', nullable=False),
        sa.Column('receiver_name', sa.String(200), nullable=False),
        sa.Column('receiver_phone', sa.String(20), nullable=False),
        sa.Column('receiver_address', sa.String(500), nullable=False),
        sa.Column('receiver_postcode', sa.String(20), nullable=False),
        sa.Column('receiver_country', sa.String(2), server_default='SG', nullable=False),
        sa.Column('status', sa.String(20), server_default='rate_checked', nullable=False),
        sa.Column('metadata', JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('return_id', name='uq_carrier_shipments_return_id'),
    )

    op.create_index('ix_carrier_shipments_order_id', 'carrier_shipments', ['order_id'])
    op.create_index('ix_carrier_shipments_order_no', 'carrier_shipments', ['order_no'])
    op.create_index('ix_carrier_shipments_awb', 'carrier_shipments', ['awb'])


def downgrade():
    op.drop_table('carrier_shipments')
    op.drop_table('return_requests')
