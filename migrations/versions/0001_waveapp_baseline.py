"""inventory, sales, receipts and settings tables

Revision ID: 0001_waveapp_baseline
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_waveapp_baseline'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'product',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('sku', sa.String(length=80), nullable=True),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('size', sa.String(length=50), nullable=True),
        sa.Column('has_variants', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stock', sa.Integer(), nullable=True),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('cost_price', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('stock IS NULL OR stock >= 0', name='ck_product_stock_nonnegative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_product_category', 'product', ['category'])
    op.create_index('ix_product_sku', 'product', ['sku'])

    op.create_table(
        'variant',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('product_id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('sku', sa.String(length=80), nullable=True),
        sa.Column('price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('cost_price', sa.Float(), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('stock >= 0', name='ck_variant_stock_nonnegative'),
        sa.ForeignKeyConstraint(['product_id'], ['product.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_variant_product_id', 'variant', ['product_id'])
    op.create_index('ix_variant_sku', 'variant', ['sku'])

    op.create_table(
        'accessory',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('sku', sa.String(length=80), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('cost_price', sa.Float(), nullable=True),
        sa.CheckConstraint('stock >= 0', name='ck_accessory_stock_nonnegative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_accessory_sku', 'accessory', ['sku'])

    op.create_table(
        'stock_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=32), nullable=True),
        sa.Column('variant_id', sa.String(length=32), nullable=True),
        sa.Column('accessory_id', sa.String(length=32), nullable=True),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('change', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('new_stock_level', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['product.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['variant.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['accessory_id'], ['accessory.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_stock_history_product_id', 'stock_history', ['product_id'])
    op.create_index('ix_stock_history_variant_id', 'stock_history', ['variant_id'])
    op.create_index('ix_stock_history_accessory_id', 'stock_history', ['accessory_id'])

    op.create_table(
        'channel_price',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=32), nullable=True),
        sa.Column('variant_id', sa.String(length=32), nullable=True),
        sa.Column('channel', sa.String(length=30), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['product.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['variant.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'variant_id', 'channel', name='uq_channel_price_owner')
    )

    op.create_table(
        'sale',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.String(length=64), nullable=True),
        sa.Column('payment_method', sa.String(length=30), nullable=True),
        sa.Column('reseller_name', sa.String(length=120), nullable=True),
        sa.Column('product_id', sa.String(length=32), nullable=False),
        sa.Column('variant_id', sa.String(length=32), nullable=True),
        sa.Column('channel', sa.String(length=30), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_at_sale', sa.Float(), nullable=False),
        sa.Column('cogs_at_sale', sa.Float(), nullable=False, server_default='0'),
        sa.Column('sale_date', sa.DateTime(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['product.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['variant.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sale_transaction_id', 'sale', ['transaction_id'])
    op.create_index('ix_sale_channel', 'sale', ['channel'])
    op.create_index('ix_sale_sale_date', 'sale', ['sale_date'])

    op.create_table(
        'reseller',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table(
        'setting',
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )

    op.create_table(
        'manual_journal_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('debit_account', sa.String(length=100), nullable=False),
        sa.Column('credit_account', sa.String(length=100), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='manual'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'shipping_receipt',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('awb', sa.String(length=100), nullable=False),
        sa.Column('channel', sa.String(length=50), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='Perlu Diproses'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_shipping_receipt_awb', 'shipping_receipt', ['awb'], unique=True)
    op.create_index('ix_shipping_receipt_date', 'shipping_receipt', ['date'])


def downgrade():
    op.drop_index('ix_shipping_receipt_date', table_name='shipping_receipt')
    op.drop_index('ix_shipping_receipt_awb', table_name='shipping_receipt')
    op.drop_table('shipping_receipt')
    op.drop_table('manual_journal_entry')
    op.drop_table('setting')
    op.drop_table('reseller')
    op.drop_index('ix_sale_sale_date', table_name='sale')
    op.drop_index('ix_sale_channel', table_name='sale')
    op.drop_index('ix_sale_transaction_id', table_name='sale')
    op.drop_table('sale')
    op.drop_table('channel_price')
    op.drop_index('ix_stock_history_accessory_id', table_name='stock_history')
    op.drop_index('ix_stock_history_variant_id', table_name='stock_history')
    op.drop_index('ix_stock_history_product_id', table_name='stock_history')
    op.drop_table('stock_history')
    op.drop_index('ix_accessory_sku', table_name='accessory')
    op.drop_table('accessory')
    op.drop_index('ix_variant_sku', table_name='variant')
    op.drop_index('ix_variant_product_id', table_name='variant')
    op.drop_table('variant')
    op.drop_index('ix_product_sku', table_name='product')
    op.drop_index('ix_product_category', table_name='product')
    op.drop_table('product')
