"""Initial ledger schema: products, movements, counts, snapshots, services, sales, ledger events

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

Creates:
1. products (ledger aggregates + expected_stock >= 0 CHECK)
2. stock_movements, stock_counts, inventory_snapshots
3. services (non-stock catalog)
4. sale_records (one row per settled cart line, cart_id shared per cart)
5. ledger_events (append-only audit stream; max id = inventory version)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('initial_stock', sa.Integer(), nullable=False),
        sa.Column('entries', sa.Integer(), nullable=False),
        sa.Column('exits', sa.Integer(), nullable=False),
        sa.Column('sales', sa.Integer(), nullable=False),
        sa.Column('min_stock', sa.Integer(), nullable=False),
        sa.Column('real_stock', sa.Integer(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('initial_stock >= 0', name=op.f('ck_products_initial_stock_non_negative')),
        sa.CheckConstraint('entries >= 0', name=op.f('ck_products_entries_non_negative')),
        sa.CheckConstraint('exits >= 0', name=op.f('ck_products_exits_non_negative')),
        sa.CheckConstraint('sales >= 0', name=op.f('ck_products_sales_non_negative')),
        sa.CheckConstraint('min_stock >= 0', name=op.f('ck_products_min_stock_non_negative')),
        sa.CheckConstraint('real_stock IS NULL OR real_stock >= 0', name=op.f('ck_products_real_stock_non_negative')),
        sa.CheckConstraint(
            'initial_stock + entries - exits - sales >= 0',
            name=op.f('ck_products_expected_stock_non_negative'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
        sa.UniqueConstraint('code', name=op.f('uq_products_code')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_category_name', ['category', 'name'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_is_active'), ['is_active'], unique=False)

    # ==========================================================================
    # 2. STOCK HISTORY
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=8), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity > 0', name=op.f('ck_stock_movements_quantity_positive')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_stock_movements_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_movements')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_product_occurred', ['product_id', 'occurred_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_kind'), ['kind'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_actor_id'), ['actor_id'], unique=False)

    op.create_table('stock_counts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('real_stock', sa.Integer(), nullable=False),
        sa.Column('expected_stock', sa.Integer(), nullable=False),
        sa.Column('difference', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('counted_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_stock_counts_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_counts')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_counts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_counts_product_id'), ['product_id'], unique=False)

    op.create_table('inventory_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('taken_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('total_products', sa.Integer(), nullable=False),
        sa.Column('total_expected_units', sa.Integer(), nullable=False),
        sa.Column('total_value_cents', sa.Integer(), nullable=False),
        sa.Column('products_with_difference', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_inventory_snapshots')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_snapshots', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_snapshots_taken_at'), ['taken_at'], unique=False)

    # ==========================================================================
    # 3. SERVICE CATALOG
    # ==========================================================================
    op.create_table('services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_services')),
        sa.UniqueConstraint('name', name=op.f('uq_services_name')),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 4. SALE RECORDS
    # ==========================================================================
    op.create_table('sale_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cart_id', sa.String(length=32), nullable=True),
        sa.Column('line_kind', sa.String(length=16), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('service_id', sa.Integer(), nullable=True),
        sa.Column('item_name', sa.String(length=100), nullable=False),
        sa.Column('barber_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('sale_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('client_data', sa.JSON(none_as_null=True), nullable=True),
        sa.Column('original_quantity', sa.Integer(), nullable=False),
        sa.Column('original_total_cents', sa.Integer(), nullable=False),
        sa.Column('refund_reason', sa.String(length=255), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_by', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name=op.f('ck_sale_records_quantity_positive')),
        sa.CheckConstraint('unit_price_cents > 0', name=op.f('ck_sale_records_unit_price_positive')),
        sa.CheckConstraint(
            "(line_kind = 'PRODUCT' AND product_id IS NOT NULL) OR "
            "(line_kind = 'SERVICE' AND service_id IS NOT NULL)",
            name=op.f('ck_sale_records_line_reference_matches_kind'),
        ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_sale_records_product_id_products')),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], name=op.f('fk_sale_records_service_id_services')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sale_records')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_records', schema=None) as batch_op:
        batch_op.create_index('ix_sale_records_barber_date', ['barber_id', 'sale_date'], unique=False)
        batch_op.create_index('ix_sale_records_status_date', ['status', 'sale_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_records_cart_id'), ['cart_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_records_line_kind'), ['line_kind'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_records_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_records_service_id'), ['service_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_records_payment_method'), ['payment_method'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_records_status'), ['status'], unique=False)

    # ==========================================================================
    # 5. LEDGER EVENTS
    # ==========================================================================
    op.create_table('ledger_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('event_category', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_ledger_events')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('ledger_events', schema=None) as batch_op:
        batch_op.create_index('ix_ledger_events_entity', ['entity_type', 'entity_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_events_event_category'), ['event_category'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_events_actor_id'), ['actor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_events_occurred_at'), ['occurred_at'], unique=False)


def downgrade():
    op.drop_table('ledger_events')
    op.drop_table('sale_records')
    op.drop_table('services')
    op.drop_table('inventory_snapshots')
    op.drop_table('stock_counts')
    op.drop_table('stock_movements')
    op.drop_table('products')
