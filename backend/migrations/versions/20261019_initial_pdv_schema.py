"""Initial PDV schema: users, cash sessions, catalog, inventory ledger, sales, customer credit, audit log

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration creates:
1. users and audit_log
2. cash_sessions (one open session per user, partial unique index) and cash_movements
3. product_groups, products, inventory_groups, inventory_items, inventory_movements
4. payment_methods, customers, sales, sale_items, sale_tenders
5. credit_payments and credit_allocations
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [
        sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)
        for name in names
    ]


def upgrade():
    # ==========================================================================
    # 1. USERS / AUDIT LOG
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='operator'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_username', ['username'], unique=False)
        batch_op.create_index('ix_users_active', ['active'], unique=False)

    op.create_table('audit_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('table_name', sa.String(length=64), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        *_timestamps('timestamp'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_log', schema=None) as batch_op:
        batch_op.create_index('ix_audit_log_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_audit_log_action', ['action'], unique=False)
        batch_op.create_index('ix_audit_log_timestamp', ['timestamp'], unique=False)
        batch_op.create_index('ix_audit_log_table_record', ['table_name', 'record_id'], unique=False)

    # ==========================================================================
    # 2. CASH SESSIONS
    # ==========================================================================
    op.create_table('cash_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('opened_by_user_id', sa.Integer(), nullable=False),
        sa.Column('closed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        *_timestamps('open_time'),
        sa.Column('close_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('initial_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('final_amount_cents', sa.Integer(), nullable=True),
        sa.Column('expected_amount_cents', sa.Integer(), nullable=True),
        sa.Column('difference_cents', sa.Integer(), nullable=True),
        sa.Column('observations', sa.Text(), nullable=True),
        sa.Column('last_movement_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['opened_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['closed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_sessions', schema=None) as batch_op:
        batch_op.create_index('ix_cash_sessions_opened_by_user_id', ['opened_by_user_id'], unique=False)
        batch_op.create_index('ix_cash_sessions_status', ['status'], unique=False)
        batch_op.create_index('ix_cash_sessions_open_time', ['open_time'], unique=False)
    op.create_index(
        'uq_cash_sessions_one_open_per_user',
        'cash_sessions',
        ['opened_by_user_id'],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    # ==========================================================================
    # 3. CATALOG / INVENTORY
    # ==========================================================================
    for table in ('product_groups', 'inventory_groups'):
        op.create_table(table,
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=128), nullable=False),
            *_timestamps('created_at'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name', name=f'uq_{table}_name'),
            sqlite_autoincrement=True
        )

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sale_type', sa.String(length=16), nullable=False, server_default='unit'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('allow_negative_stock', sa.Boolean(), nullable=True),
        sa.Column('group_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['group_id'], ['product_groups.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode', name='uq_products_barcode'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_group_id', ['group_id'], unique=False)
        batch_op.create_index('ix_products_group_description', ['group_id', 'description'], unique=False)

    op.create_table('inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=True),
        sa.Column('current_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('minimum_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_of_measure', sa.String(length=16), nullable=False, server_default='un'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['group_id'], ['inventory_groups.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_inventory_items_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_items', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_items_name', ['name'], unique=False)
        batch_op.create_index('ix_inventory_items_group_id', ['group_id'], unique=False)

    op.create_table('inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=False),
        *_timestamps('created_at'),
        sa.CheckConstraint('quantity > 0', name='ck_inventory_movements_quantity_positive'),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id'], ),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_movements', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_movements_item_id', ['item_id'], unique=False)
        batch_op.create_index('ix_inventory_movements_type', ['type'], unique=False)
        batch_op.create_index('ix_inventory_movements_performed_by_user_id', ['performed_by_user_id'], unique=False)
        batch_op.create_index('ix_inventory_movements_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_inventory_movements_item_created', ['item_id', 'created_at'], unique=False)

    # ==========================================================================
    # 4. SALES
    # ==========================================================================
    op.create_table('payment_methods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='other'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_payment_methods_name'),
        sqlite_autoincrement=True
    )

    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('cpf', sa.String(length=14), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('credit_limit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('last_credit_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cpf', name='uq_customers_cpf'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_name', 'customers', ['name'], unique=False)

    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cash_session_id', sa.Integer(), nullable=False),
        sa.Column('operator_user_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        *_timestamps('sale_date'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('change_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_status', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('training_mode', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('idempotency_key', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['cash_session_id'], ['cash_sessions.id'], ),
        sa.ForeignKeyConstraint(['operator_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', name='uq_sales_idempotency_key'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_cash_session_id', ['cash_session_id'], unique=False)
        batch_op.create_index('ix_sales_operator_user_id', ['operator_user_id'], unique=False)
        batch_op.create_index('ix_sales_customer_id', ['customer_id'], unique=False)
        batch_op.create_index('ix_sales_sale_date', ['sale_date'], unique=False)
        batch_op.create_index('ix_sales_credit_status', ['credit_status'], unique=False)
        batch_op.create_index('ix_sales_training_date', ['training_mode', 'sale_date'], unique=False)
        batch_op.create_index('ix_sales_customer_credit', ['customer_id', 'credit_status'], unique=False)

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_sale_items_quantity_positive'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index('ix_sale_items_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_sale_items_product_id', ['product_id'], unique=False)

    op.create_table('sale_tenders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('received_cents', sa.Integer(), nullable=True),
        sa.Column('change_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('amount_cents > 0', name='ck_sale_tenders_amount_positive'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_tenders', schema=None) as batch_op:
        batch_op.create_index('ix_sale_tenders_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_sale_tenders_method', ['method'], unique=False)

    op.create_table('cash_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cash_session_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('created_at'),
        sa.CheckConstraint('amount_cents > 0', name='ck_cash_movements_amount_positive'),
        sa.ForeignKeyConstraint(['cash_session_id'], ['cash_sessions.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_movements', schema=None) as batch_op:
        batch_op.create_index('ix_cash_movements_cash_session_id', ['cash_session_id'], unique=False)
        batch_op.create_index('ix_cash_movements_type', ['type'], unique=False)
        batch_op.create_index('ix_cash_movements_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_cash_movements_session_created', ['cash_session_id', 'created_at'], unique=False)

    # ==========================================================================
    # 5. CUSTOMER CREDIT
    # ==========================================================================
    op.create_table('credit_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=64), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('created_at'),
        sa.CheckConstraint('amount_cents > 0', name='ck_credit_payments_amount_positive'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('credit_payments', schema=None) as batch_op:
        batch_op.create_index('ix_credit_payments_customer_id', ['customer_id'], unique=False)
        batch_op.create_index('ix_credit_payments_created_at', ['created_at'], unique=False)

    op.create_table('credit_allocations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('credit_payment_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('amount_cents > 0', name='ck_credit_allocations_amount_positive'),
        sa.ForeignKeyConstraint(['credit_payment_id'], ['credit_payments.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('credit_allocations', schema=None) as batch_op:
        batch_op.create_index('ix_credit_allocations_credit_payment_id', ['credit_payment_id'], unique=False)
        batch_op.create_index('ix_credit_allocations_sale_id', ['sale_id'], unique=False)


def downgrade():
    for table in (
        'credit_allocations',
        'credit_payments',
        'cash_movements',
        'sale_tenders',
        'sale_items',
        'sales',
        'customers',
        'payment_methods',
        'inventory_movements',
        'inventory_items',
        'products',
        'inventory_groups',
        'product_groups',
    ):
        op.drop_table(table)
    op.drop_index('uq_cash_sessions_one_open_per_user', table_name='cash_sessions')
    op.drop_table('cash_sessions')
    op.drop_table('audit_log')
    op.drop_table('users')
