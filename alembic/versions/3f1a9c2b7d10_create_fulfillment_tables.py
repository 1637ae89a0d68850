"""create fulfillment tables

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2026-10-19 09:12:44.381905

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2b7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

store_type = sa.Enum('SHOPIFY', 'BIGCOMMERCE', 'WOOCOMMERCE', name='storetype')
order_status = sa.Enum('PENDING', 'PROCESSING', 'SHIPPED', 'FULFILLED', 'CANCELLED', name='orderstatus')
assignment_type = sa.Enum('FULL', 'PARTIAL', name='assignmenttype')
assignment_status = sa.Enum('ASSIGNED', 'ACCEPTED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='assignmentstatus')
tracking_status = sa.Enum('PENDING', 'SHIPPED', 'IN_TRANSIT', 'OUT_FOR_DELIVERY', 'DELIVERED', 'EXCEPTION',
                          name='trackingstatus')
proof_type = sa.Enum('DESIGN_PROOF', 'PRODUCTION_PROOF', name='prooftype')
proof_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'REVISION_REQUESTED', name='proofstatus')
alert_type = sa.Enum('UNASSIGNED', 'NOT_ACCEPTED', 'NOT_STARTED', 'STALE_IN_PROGRESS', 'MISSING_TRACKING',
                     'STALE_TRACKING', 'OVERDUE_PROOF', name='alerttype')


def upgrade() -> None:
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', store_type, nullable=False),
        sa.Column('store_url', sa.String(length=500), nullable=False),
        sa.Column('api_credentials', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_stores_id'), 'stores', ['id'], unique=False)

    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_name', sa.String(length=255), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_vendors_id'), 'vendors', ['id'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('external_order_id', sa.String(length=255), nullable=False),
        sa.Column('order_number', sa.String(length=100), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=50), nullable=True),
        sa.Column('billing_address', sa.JSON(), nullable=True),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=True),
        sa.Column('order_status', order_status, nullable=False),
        sa.Column('fulfillment_status', sa.String(length=50), nullable=True),
        sa.Column('payment_status', sa.String(length=50), nullable=True),
        sa.Column('tags', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('order_date', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'external_order_id', name='uq_orders_store_external_order_id')
    )
    op.create_index(op.f('ix_orders_id'), 'orders', ['id'], unique=False)
    op.create_index('ix_orders_order_status', 'orders', ['order_status'], unique=False)
    op.create_index('ix_orders_order_date', 'orders', ['order_date'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('external_item_id', sa.String(length=255), nullable=True),
        sa.Column('product_name', sa.String(length=500), nullable=False),
        sa.Column('sku', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('variant_title', sa.String(length=500), nullable=True),
        sa.Column('product_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_order_items_id'), 'order_items', ['id'], unique=False)
    op.create_index(op.f('ix_order_items_order_id'), 'order_items', ['order_id'], unique=False)

    op.create_table(
        'vendor_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('assigned_by', sa.String(length=255), nullable=True),
        sa.Column('assignment_type', assignment_type, nullable=False),
        sa.Column('status', assignment_status, nullable=False),
        sa.Column('commission_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'vendor_id', name='uq_vendor_assignments_order_vendor')
    )
    op.create_index(op.f('ix_vendor_assignments_id'), 'vendor_assignments', ['id'], unique=False)
    op.create_index(op.f('ix_vendor_assignments_order_id'), 'vendor_assignments', ['order_id'], unique=False)
    op.create_index(op.f('ix_vendor_assignments_vendor_id'), 'vendor_assignments', ['vendor_id'], unique=False)

    op.create_table(
        'order_item_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vendor_assignment_id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('assigned_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['vendor_assignment_id'], ['vendor_assignments.id'], ),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_item_id', name='uq_order_item_assignments_order_item')
    )
    op.create_index(op.f('ix_order_item_assignments_id'), 'order_item_assignments', ['id'], unique=False)
    op.create_index(op.f('ix_order_item_assignments_vendor_assignment_id'), 'order_item_assignments',
                    ['vendor_assignment_id'], unique=False)

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('vendor_assignment_id', sa.Integer(), nullable=True),
        sa.Column('changed_by', sa.String(length=255), nullable=True),
        sa.Column('old_status', sa.String(length=50), nullable=True),
        sa.Column('new_status', sa.String(length=50), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['vendor_assignment_id'], ['vendor_assignments.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_order_status_history_id'), 'order_status_history', ['id'], unique=False)
    op.create_index(op.f('ix_order_status_history_order_id'), 'order_status_history', ['order_id'], unique=False)

    op.create_table(
        'order_tracking',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('vendor_assignment_id', sa.Integer(), nullable=False),
        sa.Column('tracking_number', sa.String(length=255), nullable=False),
        sa.Column('carrier', sa.String(length=100), nullable=True),
        sa.Column('tracking_url', sa.String(length=500), nullable=True),
        sa.Column('status', tracking_status, nullable=False),
        sa.Column('shipped_date', sa.DateTime(), nullable=True),
        sa.Column('delivered_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['vendor_assignment_id'], ['vendor_assignments.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_order_tracking_id'), 'order_tracking', ['id'], unique=False)
    op.create_index(op.f('ix_order_tracking_order_id'), 'order_tracking', ['order_id'], unique=False)
    op.create_index(op.f('ix_order_tracking_vendor_assignment_id'), 'order_tracking', ['vendor_assignment_id'],
                    unique=False)

    op.create_table(
        'synced_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('external_product_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sku', sa.String(length=255), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('inventory_quantity', sa.Integer(), nullable=True),
        sa.Column('product_type', sa.String(length=255), nullable=True),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('variants', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'external_product_id', name='uq_synced_products_store_external_product')
    )
    op.create_index(op.f('ix_synced_products_id'), 'synced_products', ['id'], unique=False)
    op.create_index(op.f('ix_synced_products_store_id'), 'synced_products', ['store_id'], unique=False)
    op.create_index(op.f('ix_synced_products_sku'), 'synced_products', ['sku'], unique=False)

    op.create_table(
        'product_vendor_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('synced_product_id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['synced_product_id'], ['synced_products.id'], ),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('synced_product_id', 'vendor_id', name='uq_product_vendor_assignments_product_vendor')
    )
    op.create_index(op.f('ix_product_vendor_assignments_id'), 'product_vendor_assignments', ['id'], unique=False)
    op.create_index(op.f('ix_product_vendor_assignments_synced_product_id'), 'product_vendor_assignments',
                    ['synced_product_id'], unique=False)
    op.create_index(op.f('ix_product_vendor_assignments_vendor_id'), 'product_vendor_assignments', ['vendor_id'],
                    unique=False)

    op.create_table(
        'proof_approvals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=True),
        sa.Column('vendor_assignment_id', sa.Integer(), nullable=True),
        sa.Column('proof_type', proof_type, nullable=False),
        sa.Column('proof_images', sa.JSON(), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('approval_token', sa.String(length=64), nullable=False),
        sa.Column('status', proof_status, nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.Column('response_notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id'], ),
        sa.ForeignKeyConstraint(['vendor_assignment_id'], ['vendor_assignments.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_proof_approvals_id'), 'proof_approvals', ['id'], unique=False)
    op.create_index(op.f('ix_proof_approvals_order_id'), 'proof_approvals', ['order_id'], unique=False)
    op.create_index(op.f('ix_proof_approvals_approval_token'), 'proof_approvals', ['approval_token'], unique=True)

    op.create_table(
        'proof_response_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proof_approval_id', sa.Integer(), nullable=False),
        sa.Column('response_type', sa.String(length=50), nullable=False),
        sa.Column('response_message', sa.Text(), nullable=True),
        sa.Column('response_ip', sa.String(length=64), nullable=True),
        sa.Column('response_user_agent', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['proof_approval_id'], ['proof_approvals.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_proof_response_logs_id'), 'proof_response_logs', ['id'], unique=False)
    op.create_index(op.f('ix_proof_response_logs_proof_approval_id'), 'proof_response_logs', ['proof_approval_id'],
                    unique=False)

    op.create_table(
        'order_production_status',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('vendor_assignment_id', sa.Integer(), nullable=True),
        sa.Column('design_proof_status', sa.String(length=50), nullable=False),
        sa.Column('production_proof_status', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['vendor_assignment_id'], ['vendor_assignments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'vendor_assignment_id', name='uq_order_production_status_order_assignment')
    )
    op.create_index(op.f('ix_order_production_status_id'), 'order_production_status', ['id'], unique=False)
    op.create_index(op.f('ix_order_production_status_order_id'), 'order_production_status', ['order_id'],
                    unique=False)
    op.create_index(
        'uq_order_production_status_order_unassigned', 'order_production_status', ['order_id'], unique=True,
        sqlite_where=sa.text('vendor_assignment_id IS NULL'),
        postgresql_where=sa.text('vendor_assignment_id IS NULL'),
    )

    op.create_table(
        'alerts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('alert_type', alert_type, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('vendor_assignment_id', sa.Integer(), nullable=True),
        sa.Column('proof_approval_id', sa.Integer(), nullable=True),
        sa.Column('tracking_id', sa.Integer(), nullable=True),
        sa.Column('vendor_id', sa.Integer(), nullable=True),
        sa.Column('hours_overdue', sa.Integer(), nullable=False),
        sa.Column('elapsed_hours', sa.Float(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['vendor_assignment_id'], ['vendor_assignments.id'], ),
        sa.ForeignKeyConstraint(['proof_approval_id'], ['proof_approvals.id'], ),
        sa.ForeignKeyConstraint(['tracking_id'], ['order_tracking.id'], ),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_alerts_id'), 'alerts', ['id'], unique=False)
    op.create_index(op.f('ix_alerts_alert_type'), 'alerts', ['alert_type'], unique=False)
    op.create_index(op.f('ix_alerts_order_id'), 'alerts', ['order_id'], unique=False)

    op.create_table(
        'monitoring_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.String(length=100), nullable=False),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key')
    )
    op.create_index(op.f('ix_monitoring_settings_id'), 'monitoring_settings', ['id'], unique=False)


def downgrade() -> None:
    for table in (
        'monitoring_settings', 'alerts', 'order_production_status', 'proof_response_logs', 'proof_approvals',
        'product_vendor_assignments', 'synced_products', 'order_tracking', 'order_status_history',
        'order_item_assignments', 'vendor_assignments', 'order_items', 'orders', 'vendors', 'stores',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (alert_type, proof_status, proof_type, tracking_status, assignment_status, assignment_type,
                      order_status, store_type):
        enum_type.drop(bind, checkfirst=True)
