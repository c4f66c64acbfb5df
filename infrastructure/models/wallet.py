"""
钱包数据库模型 - SQLAlchemy ORM模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Boolean, JSON, Index, ForeignKey, CheckConstraint
)
from datetime import datetime, timezone

from .base import Base


class WalletModel(Base):
    """钱包余额"""
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False, index=True, comment="用户ID")
    balance = Column(BigInteger, nullable=False, default=0, comment="余额（最小货币单位）")
    currency = Column(String(3), nullable=False, default="NGN", comment="货币代码")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")
    last_transaction_at = Column(DateTime(timezone=True), nullable=True, comment="最近交易时间")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),
    )


class WalletTransactionModel(Base):
    """钱包流水（只追加）"""
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True, comment="用户ID")
    wallet_id = Column(
        Integer,
        ForeignKey("wallets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="钱包ID"
    )
    type = Column(String(20), nullable=False, comment="类型: credit/debit/refund")
    amount = Column(BigInteger, nullable=False, comment="金额（最小货币单位）")
    currency = Column(String(3), nullable=False, default="NGN", comment="货币代码")
    balance_after = Column(BigInteger, nullable=True, comment="交易后余额")
    description = Column(String(500), nullable=False, comment="描述")
    reference = Column(String(120), unique=True, nullable=False, comment="流水号（唯一）")
    status = Column(String(20), nullable=False, default="completed", comment="状态")

    # 元数据（JSON格式，使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    related_ticket_id = Column(String(36), nullable=True, index=True, comment="关联票据")
    related_event_id = Column(Integer, nullable=True, comment="关联活动")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wallet_transactions_amount_positive"),
        Index("ix_wallet_transactions_user_created", "user_id", "created_at"),
    )
