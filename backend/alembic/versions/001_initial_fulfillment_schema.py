"""Initial fulfillment schema

Warehouses, products and BOMs, stock levels with soft/hard reservations,
sales orders, fulfillment waves and the four work documents.

Revision ID: 001_initial_fulfillment
Revises:
Create Date: 2026-03-02

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_fulfillment'
down_revision = None
branch_labels = None
depends_on = None

QTY = sa.Numeric(18, 4)


def _timestamps(updated=True):
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=False))
    return columns


def upgrade() -> None:
    # Master data
    op.create_table(
        'warehouses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('can_assemble', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_warehouses_code', 'warehouses', ['code'], unique=True)

    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='ZAR'),
        sa.Column('contact_email', sa.String(200), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_suppliers_code', 'suppliers', ['code'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(20), nullable=False, server_default='EA'),
        sa.Column('product_type', sa.String(20), nullable=False, server_default='stock_only'),
        sa.Column('default_supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=True),
        sa.Column('cost_price', QTY, nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)
    op.create_index('ix_products_product_type', 'products', ['product_type'])

    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('fulfillment_policy', sa.String(20), nullable=False, server_default='ship_complete'),
        sa.Column('default_warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_companies_code', 'companies', ['code'], unique=True)

    op.create_table(
        'bom_components',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('parent_product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('component_product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('is_optional', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.String(500), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('parent_product_id', 'component_product_id', name='uq_bom_parent_component'),
        sa.CheckConstraint('quantity > 0', name='ck_bom_quantity_positive'),
    )
    op.create_index('ix_bom_components_parent_product_id', 'bom_components', ['parent_product_id'])
    op.create_index('ix_bom_components_component_product_id', 'bom_components', ['component_product_id'])

    # Stock
    op.create_table(
        'stock_levels',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('on_hand', QTY, nullable=False, server_default='0'),
        sa.Column('soft_reserved', QTY, nullable=False, server_default='0'),
        sa.Column('hard_reserved', QTY, nullable=False, server_default='0'),
        sa.Column('on_order', QTY, nullable=False, server_default='0'),
        sa.Column('reorder_point', QTY, nullable=False, server_default='0'),
        sa.Column('reorder_quantity', QTY, nullable=False, server_default='0'),
        sa.Column('maximum_stock', QTY, nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'warehouse_id', name='uq_stock_level_product_warehouse'),
    )
    op.create_index('ix_stock_levels_product_id', 'stock_levels', ['product_id'])
    op.create_index('ix_stock_levels_warehouse_id', 'stock_levels', ['warehouse_id'])

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('transaction_type', sa.String(50), nullable=False),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_inventory_transactions_product_id', 'inventory_transactions', ['product_id'])
    op.create_index('ix_inventory_transactions_warehouse_id', 'inventory_transactions', ['warehouse_id'])

    # Sales orders and waves
    op.create_table(
        'sales_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_number', sa.String(50), nullable=False),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='draft'),
        sa.Column('fulfillment_policy_override', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_sales_orders_order_number', 'sales_orders', ['order_number'], unique=True)
    op.create_index('ix_sales_orders_company_id', 'sales_orders', ['company_id'])
    op.create_index('ix_sales_orders_status', 'sales_orders', ['status'])

    op.create_table(
        'sales_order_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sales_order_id', sa.Integer(), sa.ForeignKey('sales_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity_ordered', QTY, nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=True),
        sa.Column('quantity_picked', QTY, nullable=False, server_default='0'),
        sa.Column('quantity_shipped', QTY, nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('sales_order_id', 'line_number', name='uq_sales_order_line_number'),
    )
    op.create_index('ix_sales_order_lines_sales_order_id', 'sales_order_lines', ['sales_order_id'])

    op.create_table(
        'fulfillment_waves',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('sales_orders.id'), nullable=False),
        sa.Column('wave_number', sa.Integer(), nullable=False),
        sa.Column('effective_policy', sa.String(20), nullable=False),
        sa.Column('plan_fingerprint', sa.String(64), nullable=False),
        sa.Column('executed_by', sa.String(100), nullable=True),
        sa.Column('executed_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('order_id', 'wave_number', name='uq_fulfillment_wave_order_number'),
    )
    op.create_index('ix_fulfillment_waves_order_id', 'fulfillment_waves', ['order_id'])

    op.create_table(
        'stock_reservations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('reservation_type', sa.String(10), nullable=False, server_default='soft'),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('reference_type', sa.String(50), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('sales_orders.id'), nullable=True),
        sa.Column('wave_id', sa.Integer(), sa.ForeignKey('fulfillment_waves.id'), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(updated=False),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        sa.Column('release_reason', sa.String(255), nullable=True),
    )
    op.create_index('ix_stock_reservations_product_id', 'stock_reservations', ['product_id'])
    op.create_index('ix_stock_reservations_warehouse_id', 'stock_reservations', ['warehouse_id'])
    op.create_index('ix_stock_reservations_order_id', 'stock_reservations', ['order_id'])
    op.create_index('ix_stock_reservations_wave_id', 'stock_reservations', ['wave_id'])
    op.create_index('ix_stock_reservations_reference', 'stock_reservations', ['reference_type', 'reference_id'])

    # Picking slips
    op.create_table(
        'picking_slips',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('number', sa.String(50), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('sales_orders.id'), nullable=False),
        sa.Column('wave_id', sa.Integer(), sa.ForeignKey('fulfillment_waves.id'), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('is_transfer_source', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_picking_slips_number', 'picking_slips', ['number'], unique=True)
    op.create_index('ix_picking_slips_order_id', 'picking_slips', ['order_id'])
    op.create_index('ix_picking_slips_wave_id', 'picking_slips', ['wave_id'])
    op.create_index('ix_picking_slips_status', 'picking_slips', ['status'])

    op.create_table(
        'picking_slip_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('picking_slip_id', sa.Integer(), sa.ForeignKey('picking_slips.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_line_id', sa.Integer(), sa.ForeignKey('sales_order_lines.id'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity_to_pick', QTY, nullable=False),
        sa.Column('quantity_picked', QTY, nullable=False, server_default='0'),
        sa.Column('transfer_to_warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=True),
    )
    op.create_index('ix_picking_slip_lines_picking_slip_id', 'picking_slip_lines', ['picking_slip_id'])
    op.create_index('ix_picking_slip_lines_order_line_id', 'picking_slip_lines', ['order_line_id'])

    # Job cards
    op.create_table(
        'job_cards',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('number', sa.String(50), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('sales_orders.id'), nullable=False),
        sa.Column('wave_id', sa.Integer(), sa.ForeignKey('fulfillment_waves.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('job_type', sa.String(20), nullable=False, server_default='assembly'),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_job_cards_number', 'job_cards', ['number'], unique=True)
    op.create_index('ix_job_cards_order_id', 'job_cards', ['order_id'])
    op.create_index('ix_job_cards_wave_id', 'job_cards', ['wave_id'])
    op.create_index('ix_job_cards_status', 'job_cards', ['status'])

    op.create_table(
        'job_card_components',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_card_id', sa.Integer(), sa.ForeignKey('job_cards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity_required', QTY, nullable=False),
        sa.Column('quantity_reserved', QTY, nullable=False, server_default='0'),
        sa.Column('shortfall', QTY, nullable=False, server_default='0'),
        sa.Column('is_optional', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_job_card_components_job_card_id', 'job_card_components', ['job_card_id'])

    op.create_table(
        'job_card_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_card_id', sa.Integer(), sa.ForeignKey('job_cards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_line_id', sa.Integer(), sa.ForeignKey('sales_order_lines.id'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('quantity', QTY, nullable=False),
    )
    op.create_index('ix_job_card_lines_job_card_id', 'job_card_lines', ['job_card_id'])
    op.create_index('ix_job_card_lines_order_line_id', 'job_card_lines', ['order_line_id'])

    # Transfers
    op.create_table(
        'transfer_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('number', sa.String(50), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('sales_orders.id'), nullable=False),
        sa.Column('wave_id', sa.Integer(), sa.ForeignKey('fulfillment_waves.id'), nullable=False),
        sa.Column('from_warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('to_warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('picking_slip_id', sa.Integer(), sa.ForeignKey('picking_slips.id'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(),
        sa.Column('received_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_transfer_requests_number', 'transfer_requests', ['number'], unique=True)
    op.create_index('ix_transfer_requests_order_id', 'transfer_requests', ['order_id'])
    op.create_index('ix_transfer_requests_wave_id', 'transfer_requests', ['wave_id'])
    op.create_index('ix_transfer_requests_status', 'transfer_requests', ['status'])

    op.create_table(
        'transfer_request_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('transfer_request_id', sa.Integer(), sa.ForeignKey('transfer_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_line_id', sa.Integer(), sa.ForeignKey('sales_order_lines.id'), nullable=True),
        sa.Column('line_number', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('quantity_received', QTY, nullable=False, server_default='0'),
        sa.Column('from_job_card', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_transfer_request_lines_transfer_request_id', 'transfer_request_lines', ['transfer_request_id'])
    op.create_index('ix_transfer_request_lines_order_line_id', 'transfer_request_lines', ['order_line_id'])

    # Purchase orders
    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('number', sa.String(50), nullable=False),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('sales_orders.id'), nullable=True),
        sa.Column('wave_id', sa.Integer(), sa.ForeignKey('fulfillment_waves.id'), nullable=True),
        sa.Column('reason', sa.String(30), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='ZAR'),
        sa.Column('status', sa.String(30), nullable=False, server_default='draft'),
        sa.Column('total_amount', QTY, nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_purchase_orders_number', 'purchase_orders', ['number'], unique=True)
    op.create_index('ix_purchase_orders_supplier_id', 'purchase_orders', ['supplier_id'])
    op.create_index('ix_purchase_orders_order_id', 'purchase_orders', ['order_id'])
    op.create_index('ix_purchase_orders_wave_id', 'purchase_orders', ['wave_id'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])

    op.create_table(
        'purchase_order_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('purchase_order_id', sa.Integer(), sa.ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('quantity_received', QTY, nullable=False, server_default='0'),
        sa.Column('unit_cost', QTY, nullable=True),
        sa.Column('source_type', sa.String(30), nullable=False),
        sa.Column('source_id', sa.Integer(), sa.ForeignKey('sales_order_lines.id'), nullable=True),
    )
    op.create_index('ix_purchase_order_lines_purchase_order_id', 'purchase_order_lines', ['purchase_order_id'])
    op.create_index('ix_purchase_order_lines_source_id', 'purchase_order_lines', ['source_id'])


def downgrade() -> None:
    for table in (
        'purchase_order_lines',
        'purchase_orders',
        'transfer_request_lines',
        'transfer_requests',
        'job_card_lines',
        'job_card_components',
        'job_cards',
        'picking_slip_lines',
        'picking_slips',
        'stock_reservations',
        'fulfillment_waves',
        'sales_order_lines',
        'sales_orders',
        'inventory_transactions',
        'stock_levels',
        'bom_components',
        'companies',
        'products',
        'suppliers',
        'warehouses',
    ):
        op.drop_table(table)
