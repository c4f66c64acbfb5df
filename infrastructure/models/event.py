"""
活动数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Index, CheckConstraint
)
from datetime import datetime, timezone

from .base import Base


class EventModel(Base):
    """
    活动数据库模型（售票相关字段）

    余票约束同时由 CHECK 约束与仓储中的条件 UPDATE 保证
    """
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, comment="活动标题")
    creator_id = Column(Integer, nullable=True, index=True, comment="创建者ID")

    # 金额以最小货币单位存储（整数）
    ticket_price = Column(BigInteger, nullable=False, default=0, comment="票价（最小货币单位）")
    currency = Column(String(3), nullable=False, default="NGN", comment="货币代码 ISO-4217")

    total_tickets = Column(Integer, nullable=False, comment="总票数")
    available_tickets = Column(Integer, nullable=False, comment="余票数")

    date = Column(DateTime(timezone=True), nullable=False, index=True, comment="活动时间")
    status = Column(
        String(20),
        nullable=False,
        default="draft",
        index=True,
        comment="活动状态: draft/published/cancelled/completed"
    )

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
        CheckConstraint("available_tickets >= 0", name="ck_events_available_non_negative"),
        CheckConstraint("available_tickets <= total_tickets", name="ck_events_available_within_total"),
        CheckConstraint("ticket_price >= 0", name="ck_events_price_non_negative"),
        Index("ix_events_status_date", "status", "date"),
    )

    def __repr__(self):
        return (
            f"<EventModel(id={self.id}, title='{self.title}', "
            f"available={self.available_tickets}/{self.total_tickets}, status='{self.status}')>"
        )
