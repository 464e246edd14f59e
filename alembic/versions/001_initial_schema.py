"""Initial schema - stores, catalog mirror, mappings, webhook audit and cooldowns

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('consumer_key', sa.Text(), nullable=False),
        sa.Column('consumer_secret', sa.Text(), nullable=False),
        sa.Column('has_stock_connector', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('connector_api_key', sa.Text(), nullable=True),
        sa.Column('connector_api_secret', sa.Text(), nullable=True),
        sa.Column('webhook_secret', sa.Text(), nullable=True),
        sa.Column('is_syncing', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('connector_last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_stores_company_id', 'stores', ['company_id'])
    op.create_index('ix_stores_url', 'stores', ['url'])
    op.create_index('ix_stores_status', 'stores', ['status'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('store_id', sa.Integer(), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False),
        sa.Column('remote_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('product_type', sa.String(), nullable=False, server_default='simple'),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('purchase_price', sa.Float(), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_status', sa.String(), nullable=False, server_default='outofstock'),
        sa.Column('manage_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('store_id', 'remote_id', name='uq_products_store_remote'),
    )
    op.create_index('ix_products_store_id', 'products', ['store_id'])
    op.create_index('ix_products_remote_id', 'products', ['remote_id'])
    op.create_index('ix_products_sku', 'products', ['sku'])

    op.create_table(
        'product_variations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('remote_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=True),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('purchase_price', sa.Float(), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_status', sa.String(), nullable=False, server_default='outofstock'),
        sa.Column('manage_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'remote_id', name='uq_variations_product_remote'),
    )
    op.create_index('ix_product_variations_product_id', 'product_variations', ['product_id'])
    op.create_index('ix_product_variations_remote_id', 'product_variations', ['remote_id'])
    op.create_index('ix_product_variations_sku', 'product_variations', ['sku'])

    op.create_table(
        'product_mappings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('master_sku', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'master_sku', name='uq_mappings_company_master_sku'),
    )
    op.create_index('ix_product_mappings_company_id', 'product_mappings', ['company_id'])

    op.create_table(
        'product_mapping_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('mapping_id', sa.Integer(), sa.ForeignKey('product_mappings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('store_id', sa.Integer(), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('is_source', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('product_id', name='uq_mapping_items_product'),
    )
    op.create_index('ix_product_mapping_items_mapping_id', 'product_mapping_items', ['mapping_id'])
    op.create_index('ix_product_mapping_items_store_id', 'product_mapping_items', ['store_id'])

    op.create_table(
        'dismissed_mapping_suggestions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('suggestion_key', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('company_id', 'suggestion_key', name='uq_dismissed_company_key'),
    )
    op.create_index('ix_dismissed_mapping_suggestions_company_id', 'dismissed_mapping_suggestions', ['company_id'])

    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('store_id', sa.Integer(), sa.ForeignKey('stores.id', ondelete='SET NULL'), nullable=True),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('direction', sa.String(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('remote_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_webhook_logs_id', 'webhook_logs', ['id'])
    op.create_index('ix_webhook_logs_store_id', 'webhook_logs', ['store_id'])
    op.create_index('ix_webhook_logs_event_type', 'webhook_logs', ['event_type'])
    op.create_index('ix_webhook_logs_direction', 'webhook_logs', ['direction'])
    op.create_index('ix_webhook_logs_status', 'webhook_logs', ['status'])
    op.create_index('ix_webhook_logs_product_id', 'webhook_logs', ['product_id'])
    op.create_index('ix_webhook_logs_created_at', 'webhook_logs', ['created_at'])

    op.create_table(
        'sync_cooldowns',
        sa.Column('key', sa.String(), primary_key=True),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_sync_cooldowns_applied_at', 'sync_cooldowns', ['applied_at'])


def downgrade() -> None:
    op.drop_table('sync_cooldowns')
    op.drop_table('webhook_logs')
    op.drop_table('dismissed_mapping_suggestions')
    op.drop_table('product_mapping_items')
    op.drop_table('product_mappings')
    op.drop_table('product_variations')
    op.drop_table('products')
    op.drop_table('stores')
