"""create_ticketing_tables

Revision ID: 3b6f2c1d8e4a
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b6f2c1d8e4a'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False, comment='活动标题'),
        sa.Column('creator_id', sa.Integer(), nullable=True, comment='创建者ID'),
        sa.Column('ticket_price', sa.BigInteger(), nullable=False, server_default='0', comment='票价（最小货币单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='NGN', comment='货币代码 ISO-4217'),
        sa.Column('total_tickets', sa.Integer(), nullable=False, comment='总票数'),
        sa.Column('available_tickets', sa.Integer(), nullable=False, comment='余票数'),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False, comment='活动时间'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft', comment='活动状态: draft/published/cancelled/completed'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('available_tickets >= 0', name='ck_events_available_non_negative'),
        sa.CheckConstraint('available_tickets <= total_tickets', name='ck_events_available_within_total'),
        sa.CheckConstraint('ticket_price >= 0', name='ck_events_price_non_negative'),
        comment='活动表（售票相关字段）'
    )
    op.create_index('ix_events_id', 'events', ['id'], unique=False)
    op.create_index('ix_events_creator_id', 'events', ['creator_id'], unique=False)
    op.create_index('ix_events_date', 'events', ['date'], unique=False)
    op.create_index('ix_events_status', 'events', ['status'], unique=False)
    op.create_index('ix_events_status_date', 'events', ['status', 'date'], unique=False)

    op.create_table(
        'tickets',
        sa.Column('id', sa.String(length=36), nullable=False, comment='票据ID（UUID）'),
        sa.Column('ticket_number', sa.String(length=40), nullable=False, comment='票号'),
        sa.Column('event_id', sa.Integer(), nullable=False, comment='活动ID'),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='购买用户ID'),
        sa.Column('buyer_email', sa.String(length=255), nullable=True, comment='买家邮箱'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1', comment='覆盖的入场人数'),
        sa.Column('price', sa.BigInteger(), nullable=False, comment='单价（最小货币单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='NGN', comment='货币代码'),
        sa.Column('refunded_amount', sa.BigInteger(), nullable=True, comment='已退金额（最小货币单位）'),
        sa.Column('qr_payload', sa.Text(), nullable=True, comment='签名二维码载荷'),
        sa.Column('payment_reference', sa.String(length=100), nullable=False, comment='支付流水号（幂等键）'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending', comment='支付状态: pending/successful/failed/refunded'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='票据状态: pending/confirmed/used/cancelled/expired'),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=False, comment='购买时间'),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True, comment='核验时间'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True, comment='取消时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_reference', name='uq_tickets_payment_reference'),
        sa.CheckConstraint('quantity >= 1', name='ck_tickets_quantity_positive'),
        comment='票据表；payment_reference 唯一保证支付核实幂等'
    )
    op.create_index('ix_tickets_ticket_number', 'tickets', ['ticket_number'], unique=True)
    op.create_index('ix_tickets_event_id', 'tickets', ['event_id'], unique=False)
    op.create_index('ix_tickets_user_id', 'tickets', ['user_id'], unique=False)
    op.create_index('ix_tickets_payment_status', 'tickets', ['payment_status'], unique=False)
    op.create_index('ix_tickets_status', 'tickets', ['status'], unique=False)
    op.create_index('ix_tickets_event_payment_status', 'tickets', ['event_id', 'payment_status'], unique=False)
    op.create_index('ix_tickets_user_created', 'tickets', ['user_id', 'created_at'], unique=False)

    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='用户ID'),
        sa.Column('balance', sa.BigInteger(), nullable=False, server_default='0', comment='余额（最小货币单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='NGN', comment='货币代码'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true', comment='是否启用'),
        sa.Column('last_transaction_at', sa.DateTime(timezone=True), nullable=True, comment='最近交易时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('balance >= 0', name='ck_wallets_balance_non_negative'),
        comment='用户钱包'
    )
    op.create_index('ix_wallets_id', 'wallets', ['id'], unique=False)
    op.create_index('ix_wallets_user_id', 'wallets', ['user_id'], unique=True)

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='用户ID'),
        sa.Column('wallet_id', sa.Integer(), nullable=False, comment='钱包ID'),
        sa.Column('type', sa.String(length=20), nullable=False, comment='类型: credit/debit/refund'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='金额（最小货币单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='NGN', comment='货币代码'),
        sa.Column('balance_after', sa.BigInteger(), nullable=True, comment='交易后余额'),
        sa.Column('description', sa.String(length=500), nullable=False, comment='描述'),
        sa.Column('reference', sa.String(length=120), nullable=False, comment='流水号（唯一）'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='completed', comment='状态'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        sa.Column('related_ticket_id', sa.String(length=36), nullable=True, comment='关联票据'),
        sa.Column('related_event_id', sa.Integer(), nullable=True, comment='关联活动'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference', name='uq_wallet_transactions_reference'),
        sa.CheckConstraint('amount > 0', name='ck_wallet_transactions_amount_positive'),
        comment='钱包流水（只追加）'
    )
    op.create_index('ix_wallet_transactions_id', 'wallet_transactions', ['id'], unique=False)
    op.create_index('ix_wallet_transactions_user_id', 'wallet_transactions', ['user_id'], unique=False)
    op.create_index('ix_wallet_transactions_wallet_id', 'wallet_transactions', ['wallet_id'], unique=False)
    op.create_index('ix_wallet_transactions_related_ticket_id', 'wallet_transactions', ['related_ticket_id'], unique=False)
    op.create_index('ix_wallet_transactions_user_created', 'wallet_transactions', ['user_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('wallet_transactions')
    op.drop_table('wallets')
    op.drop_table('tickets')
    op.drop_table('events')
