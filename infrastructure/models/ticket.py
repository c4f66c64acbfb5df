"""
票据数据库模型 - SQLAlchemy ORM模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, Index, ForeignKey, CheckConstraint
)
from datetime import datetime, timezone

from .base import Base


class TicketModel(Base):
    """
    票据数据库模型

    payment_reference 唯一索引是支付核实幂等的最终保证
    """
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, comment="票据ID（UUID）")
    ticket_number = Column(String(40), unique=True, nullable=False, index=True, comment="票号")

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="活动ID"
    )
    user_id = Column(Integer, nullable=False, index=True, comment="购买用户ID")
    buyer_email = Column(String(255), nullable=True, comment="买家邮箱")

    quantity = Column(Integer, nullable=False, default=1, comment="覆盖的入场人数")
    price = Column(BigInteger, nullable=False, comment="单价（最小货币单位）")
    currency = Column(String(3), nullable=False, default="NGN", comment="货币代码")
    refunded_amount = Column(BigInteger, nullable=True, comment="已退金额（最小货币单位）")

    qr_payload = Column(Text, nullable=True, comment="签名二维码载荷")
    payment_reference = Column(String(100), unique=True, nullable=False, comment="支付流水号（幂等键）")
    payment_status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/successful/failed/refunded"
    )
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="票据状态: pending/confirmed/used/cancelled/expired"
    )

    purchase_date = Column(DateTime(timezone=True), nullable=False, comment="购买时间")
    used_at = Column(DateTime(timezone=True), nullable=True, comment="核验时间")
    cancelled_at = Column(DateTime(timezone=True), nullable=True, comment="取消时间")

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
        CheckConstraint("quantity >= 1", name="ck_tickets_quantity_positive"),
        Index("ix_tickets_event_payment_status", "event_id", "payment_status"),
        Index("ix_tickets_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<TicketModel(id='{self.id}', number='{self.ticket_number}', "
            f"status='{self.status}', payment_status='{self.payment_status}')>"
        )
