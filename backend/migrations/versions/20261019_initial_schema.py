"""initial schema

Revision ID: c7a1d2e3f401
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the campaign schema from scratch:
- donations: donation records with the pending/approved/rejected lifecycle
- inventory_items: box ingredients with a materialized stock balance
- stock_transactions: append-only stock movements explaining every balance
- users / session_tokens: dashboard operators and their sessions
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c7a1d2e3f401'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # donations
    # ============================================================================
    op.create_table(
        'donations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('boxes', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=64), nullable=False),
        sa.Column('receipt_url', sa.String(length=1024), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=255), nullable=True),
        sa.Column('channel_chat_id', sa.String(length=64), nullable=True),
        sa.Column('channel_message_id', sa.Integer(), nullable=True),
        sa.Column('channel_message_kind', sa.String(length=8), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name='ck_donations_status'),
        sa.CheckConstraint('amount > 0', name='ck_donations_amount_positive'),
        sa.CheckConstraint('boxes IS NULL OR boxes >= 0', name='ck_donations_boxes_non_negative'),
    )
    op.create_index('ix_donations_status', 'donations', ['status'])
    op.create_index('ix_donations_created_at', 'donations', ['created_at'])
    op.create_index('ix_donations_status_created', 'donations', ['status', 'created_at'])

    # ============================================================================
    # inventory_items
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('name_en', sa.String(length=120), nullable=True),
        sa.Column('quantity_per_box', sa.Float(), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('current_stock', sa.Float(), nullable=False),
        sa.Column('cost_per_unit', sa.Float(), nullable=False),
        sa.Column('min_stock_alert', sa.Float(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_inventory_items_code'),
        sa.CheckConstraint('quantity_per_box > 0', name='ck_inventory_items_per_box_positive'),
        sa.CheckConstraint('current_stock >= 0', name='ck_inventory_items_stock_non_negative'),
        sa.CheckConstraint('cost_per_unit >= 0', name='ck_inventory_items_cost_non_negative'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # stock_transactions: append-only
    # ============================================================================
    op.create_table(
        'stock_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('cost_per_unit', sa.Float(), nullable=True),
        sa.Column('total_cost', sa.Float(), nullable=True),
        sa.Column('boxes_made', sa.Integer(), nullable=True),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("type IN ('purchase', 'usage', 'adjustment')", name='ck_stock_transactions_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_transactions_item_id', 'stock_transactions', ['item_id'])
    op.create_index('ix_stock_transactions_type', 'stock_transactions', ['type'])
    op.create_index('ix_stock_transactions_created_at', 'stock_transactions', ['created_at'])
    op.create_index('ix_stock_transactions_item_created', 'stock_transactions', ['item_id', 'created_at'])

    # ============================================================================
    # users / session_tokens
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=120), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])


def downgrade():
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('stock_transactions')
    op.drop_table('inventory_items')
    op.drop_table('donations')
